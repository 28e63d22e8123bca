"""Project scanner: discovery followed by sequential metadata extraction."""

from __future__ import annotations

import logging
import stat as stat_module
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

from repodex.state.models import DEFAULT_IMPORTANCE, Project, project_id_for_path, utcnow

from .detectors import LanguageDetector, ReadmeFinder
from .discovery import CandidateFinder
from .git import GitInspector, VcsInfo, VcsInspector
from .globbing import GlobEntry, GlobMatcher
from .models import CancellationToken, ScanConfig, ScanError, ScanProgress, ScanResult, ScanStats

LOGGER = logging.getLogger(__name__)

SIZE_SAMPLE_DEPTH = 3
SIZE_SAMPLE_CAP_BYTES = 100_000_000
FILE_COUNT_DEPTH = 5
PROGRESS_INTERVAL = 10

ProgressCallback = Callable[[ScanProgress], None]


class Scanner:
    """Discover projects under the configured roots and describe each one.

    Candidates are processed one at a time. Cancellation is checked between
    candidates, so the candidate in flight always completes. Failures of a
    single candidate are recorded in :attr:`ScanResult.errors` and never stop
    the scan.
    """

    def __init__(
        self,
        config: ScanConfig,
        existing_projects: Iterable[Project] = (),
        *,
        globber: GlobMatcher | None = None,
        vcs: VcsInspector | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        """Initialize the scanner.

        Args:
            config: Roots, ignore patterns, and limits for this scan.
            existing_projects: Stored projects whose ids and user metadata are
                carried over when their path is rediscovered.
            globber: Glob collaborator used for every bounded walk.
            vcs: Version-control collaborator; defaults to :class:`GitInspector`.
            progress_callback: Receives :class:`ScanProgress` notifications.
        """
        self.config = config
        self._globber = globber or GlobMatcher()
        self._vcs: VcsInspector = vcs or GitInspector()
        self._readmes = ReadmeFinder(self._globber)
        self._languages = LanguageDetector(self._globber)
        self._progress_callback = progress_callback
        self._token = CancellationToken()
        self._existing = {project.path: project for project in existing_projects}
        LOGGER.info("Scanner initialized with %d existing projects", len(self._existing))

    def set_progress_callback(self, callback: ProgressCallback | None) -> None:
        self._progress_callback = callback

    def cancel(self) -> None:
        """Request cooperative cancellation before the next candidate."""
        self._token.cancel()
        LOGGER.info("Scan cancellation requested")

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    def scan(self, token: CancellationToken | None = None) -> ScanResult:
        """Run discovery and per-candidate processing.

        Args:
            token: Optional external cancellation token; :meth:`cancel` sets it too.

        Returns:
            ScanResult: Projects, per-candidate errors, and aggregate stats. A
            cancelled scan returns what was processed before cancellation.
        """
        if token is not None:
            self._token = token
        started = time.monotonic()
        projects: list[Project] = []
        errors: list[ScanError] = []

        LOGGER.info("Starting scan of %s", [entry.path for entry in self.config.paths])
        candidates = self.find_candidates()
        discovered = len(candidates)
        LOGGER.info("Found %d candidate projects", discovered)

        processed = 0
        last_reported = -1
        current_path = ""
        for candidate in candidates:
            if self._token.cancelled:
                LOGGER.info("Scan cancelled after %d of %d candidates", processed, discovered)
                break
            current_path = str(candidate)
            try:
                project = self.process_candidate(candidate)
            except Exception as exc:
                LOGGER.warning("Failed to process %s: %s", candidate, exc)
                errors.append(ScanError(path=current_path, error=str(exc) or type(exc).__name__))
            else:
                if project is not None:
                    projects.append(project)
            processed += 1
            if processed % PROGRESS_INTERVAL == 0:
                self._report(discovered, processed, current_path)
                last_reported = processed

        if last_reported != processed:
            self._report(discovered, processed, current_path)

        git_repos = sum(1 for project in projects if project.type == "git")
        return ScanResult(
            projects=projects,
            errors=errors,
            stats=ScanStats(
                total_scanned=processed,
                git_repos=git_repos,
                local_projects=len(projects) - git_repos,
                duration_ms=int((time.monotonic() - started) * 1000),
            ),
        )

    def find_candidates(self) -> list[Path]:
        """Return candidate directories for the configured roots."""
        finder = CandidateFinder(
            self.config,
            globber=self._globber,
            vcs=self._vcs,
            readmes=self._readmes,
            languages=self._languages,
        )
        return finder.find()

    def process_candidate(self, path: Path) -> Optional[Project]:
        """Describe one candidate directory.

        Args:
            path: Canonical candidate path.

        Returns:
            Optional[Project]: The project, or None when the path is not a
            directory or its sampled size is below ``min_size_bytes``.

        Raises:
            OSError: If the candidate cannot be inspected.
        """
        stats = path.stat()
        if not stat_module.S_ISDIR(stats.st_mode):
            return None

        size = self.estimate_size(path)
        if size < self.config.min_size_bytes:
            LOGGER.debug("Skipping %s: sampled size %d below minimum", path, size)
            return None

        versioned = self._vcs.is_versioned(path)
        info = self._vcs.get_info(path, self.config.git_timeout_seconds) if versioned else VcsInfo()
        existing = self._existing.get(str(path))
        provider = info.remotes[0].provider if info.remotes else None

        return Project(
            id=existing.id if existing else project_id_for_path(str(path)),
            name=path.name or str(path),
            path=str(path),
            type="git" if versioned else "local",
            tags=list(existing.tags) if existing else [],
            importance=existing.importance if existing else DEFAULT_IMPORTANCE,
            description=existing.description if existing else None,
            size_bytes=size,
            file_count=self.count_files(path),
            created_at=(existing.created_at if existing and existing.created_at else _created_at(stats)),
            last_modified_at=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
            provider=provider,
            last_commit_hash=info.last_commit_hash,
            branch=info.branch,
            remotes=list(info.remotes),
            readme_files=self._readmes.find(path),
            language=self._languages.detect(path),
            scan_status="complete",
            last_scanned_at=utcnow(),
        )

    def estimate_size(self, path: Path) -> int:
        """Sum file sizes up to a shallow depth, stopping past the sampling cap."""
        total = 0
        for entry in self._globber.iter_matches(
            "**/*",
            cwd=path,
            deep=SIZE_SAMPLE_DEPTH,
            ignore=self.config.ignored_patterns,
            follow_symlinks=False,
            stats=True,
        ):
            if isinstance(entry, GlobEntry):
                total += entry.stats.st_size
            if total > SIZE_SAMPLE_CAP_BYTES:
                break
        return total

    def count_files(self, path: Path) -> int:
        """Count files up to a bounded depth."""
        return sum(
            1
            for _ in self._globber.iter_matches(
                "**/*",
                cwd=path,
                deep=FILE_COUNT_DEPTH,
                ignore=self.config.ignored_patterns,
                follow_symlinks=False,
            )
        )

    def _report(self, discovered: int, processed: int, current_path: str) -> None:
        if self._progress_callback is None:
            return
        progress = ScanProgress(discovered=discovered, processed=processed, current_path=current_path)
        try:
            self._progress_callback(progress)
        except Exception:
            LOGGER.exception("Progress callback failed")


def _created_at(stats) -> datetime:
    birth = getattr(stats, "st_birthtime", None)
    timestamp = birth if birth is not None else stats.st_ctime
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


__all__ = [
    "FILE_COUNT_DEPTH",
    "PROGRESS_INTERVAL",
    "ProgressCallback",
    "SIZE_SAMPLE_CAP_BYTES",
    "SIZE_SAMPLE_DEPTH",
    "Scanner",
]
