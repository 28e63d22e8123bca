"""Data models shared by the scanner and its callers."""

from __future__ import annotations

import threading
from typing import Any, List

from pydantic import Field, field_validator

from repodex.state.models import CamelModel, Project


class ScanPath(CamelModel):
    """A root directory to scan.

    Attributes:
        path: Directory to search for projects.
        include_as_project: Record the root itself even when it holds nested
            repositories or no project indicators.
    """

    path: str
    include_as_project: bool = False


class ScanConfig(CamelModel):
    """Parameters of a single scan.

    Attributes:
        paths: Roots to scan; bare strings are accepted.
        ignored_patterns: Glob patterns excluded from discovery and sampling.
        max_depth: Maximum depth searched for ``.git`` entries.
        min_size_bytes: Candidates whose sampled size is smaller are dropped.
        git_timeout_seconds: Timeout for each git invocation.
    """

    paths: List[ScanPath] = Field(default_factory=list)
    ignored_patterns: List[str] = Field(default_factory=list)
    max_depth: int = 5
    min_size_bytes: int = 0
    git_timeout_seconds: float = 10.0

    @field_validator("paths", mode="before")
    @classmethod
    def _coerce_paths(cls, value: Any) -> Any:
        if isinstance(value, (str, bytes)):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return value
        return [{"path": str(item)} if isinstance(item, str) else item for item in value]


class ScanProgress(CamelModel):
    """Progress notification emitted while a scan runs."""

    discovered: int = 0
    processed: int = 0
    current_path: str = ""


class ScanError(CamelModel):
    """A candidate that failed processing."""

    path: str
    error: str


class ScanStats(CamelModel):
    """Aggregate counters for a finished scan."""

    total_scanned: int = 0
    git_repos: int = 0
    local_projects: int = 0
    duration_ms: int = 0


class ScanResult(CamelModel):
    """Projects and errors produced by one scan."""

    projects: List[Project] = Field(default_factory=list)
    errors: List[ScanError] = Field(default_factory=list)
    stats: ScanStats = Field(default_factory=ScanStats)


class CancellationToken:
    """Cooperative cancellation flag polled between candidates."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


__all__ = [
    "CancellationToken",
    "ScanConfig",
    "ScanError",
    "ScanPath",
    "ScanProgress",
    "ScanResult",
    "ScanStats",
]
