"""Language and README detection for candidate directories."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .globbing import GlobMatcher

# Order is the tie-break: the first language with any indicator wins.
LANGUAGE_INDICATORS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("typescript", ("tsconfig.json", "package.json")),
    ("javascript", ("package.json", "yarn.lock")),
    ("python", ("requirements.txt", "setup.py", "pyproject.toml")),
    ("rust", ("Cargo.toml",)),
    ("go", ("go.mod", "go.sum")),
    ("java", ("pom.xml", "build.gradle")),
    ("ruby", ("Gemfile",)),
    ("php", ("composer.json",)),
    ("csharp", ("*.csproj", "*.sln")),
    ("swift", ("Package.swift",)),
)

README_PATTERN = "**/README*.{md,txt,rst}"
README_DEPTH = 2


class LanguageDetector:
    """Guess a project's primary language from manifest files in its root."""

    def __init__(self, globber: GlobMatcher | None = None) -> None:
        self._globber = globber or GlobMatcher()

    def detect(self, path: Path) -> Optional[str]:
        """Return the first language in table order with a matching indicator."""
        for language, patterns in LANGUAGE_INDICATORS:
            for pattern in patterns:
                matches = self._globber.iter_matches(
                    pattern,
                    cwd=path,
                    deep=1,
                    case_sensitive=False,
                    follow_symlinks=False,
                )
                if next(matches, None) is not None:
                    return language
        return None


class ReadmeFinder:
    """Locate README documents near the top of a project."""

    def __init__(self, globber: GlobMatcher | None = None) -> None:
        self._globber = globber or GlobMatcher()

    def find(self, path: Path) -> list[str]:
        """Return README paths relative to ``path`` using POSIX separators."""
        return [
            str(match)
            for match in self._globber.iter_matches(
                README_PATTERN,
                cwd=path,
                deep=README_DEPTH,
                case_sensitive=False,
                follow_symlinks=False,
            )
        ]

    def has_readme(self, path: Path) -> bool:
        """Return whether any README exists at the top of ``path``."""
        matches = self._globber.iter_matches(
            README_PATTERN, cwd=path, deep=1, case_sensitive=False, follow_symlinks=False
        )
        return next(matches, None) is not None


__all__ = ["LANGUAGE_INDICATORS", "LanguageDetector", "README_PATTERN", "ReadmeFinder"]
