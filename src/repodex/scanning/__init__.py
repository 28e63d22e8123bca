"""Project discovery and metadata extraction."""

from .detectors import LANGUAGE_INDICATORS, LanguageDetector, ReadmeFinder
from .discovery import CandidateFinder
from .git import GitInspector, VcsInfo, VcsInspector, parse_remote_url
from .globbing import GlobEntry, GlobMatcher
from .models import (
    CancellationToken,
    ScanConfig,
    ScanError,
    ScanPath,
    ScanProgress,
    ScanResult,
    ScanStats,
)
from .scanner import ProgressCallback, Scanner

__all__ = [
    "CancellationToken",
    "CandidateFinder",
    "GitInspector",
    "GlobEntry",
    "GlobMatcher",
    "LANGUAGE_INDICATORS",
    "LanguageDetector",
    "ProgressCallback",
    "ReadmeFinder",
    "ScanConfig",
    "ScanError",
    "ScanPath",
    "ScanProgress",
    "ScanResult",
    "ScanStats",
    "Scanner",
    "VcsInfo",
    "VcsInspector",
    "parse_remote_url",
]
