"""Catalog service wiring the store, search index, and scan jobs together."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, Field, ValidationError

from repodex.config import RepodexConfig
from repodex.jobs import ScanJob, ScanJobManager, ScannerFactory
from repodex.scanning import GlobEntry, GlobMatcher, ScanConfig, ScanError, ScanStats
from repodex.search import (
    DEFAULT_PAGE_SIZE,
    ProjectFilters,
    ProjectPage,
    SearchIndexManager,
    SortSpec,
    sort_projects,
)
from repodex.state import Project, ProjectsDocument, ProjectStore, StoreError, migrate
from repodex.state.models import utcnow

from .errors import CatalogError, InvalidInputError, ProjectNotFoundError

LOGGER = logging.getLogger(__name__)

PREVIEW_LIMIT = 10
MODIFIED_SCAN_DEPTH = 6
MODIFIED_SCAN_IGNORES = ("**/node_modules/**", "**/.git/**", "**/dist/**")

ImportMode = Literal["replace", "merge"]
ConflictPolicy = Literal["overwrite", "skip"]
ScanPathInput = Union[str, Mapping[str, Any]]


class ScanStatusReport(BaseModel):
    """Summary of a scan job suitable for display."""

    job_id: str
    status: str
    percent: int = 0
    discovered: int = 0
    processed: int = 0
    current_path: str = ""
    errors: List[ScanError] = Field(default_factory=list)
    stats: Optional[ScanStats] = None
    error: Optional[str] = None


class ImportPreview(BaseModel):
    """What an import file contains, without applying it."""

    version: int
    count: int
    projects: List[Project] = Field(default_factory=list)


class ImportSummary(BaseModel):
    """Outcome of an import."""

    mode: ImportMode
    imported: int = 0
    skipped: int = 0
    total: int = 0


class ProjectCatalog:
    """Owns the project store, its search index, and the scan job manager.

    Call :meth:`open` (or use the catalog as a context manager) before any
    other operation; :meth:`close` cancels running scans and flushes the store.
    """

    def __init__(
        self,
        store: ProjectStore,
        *,
        index: SearchIndexManager | None = None,
        scan_defaults: ScanConfig | None = None,
        scanner_factory: ScannerFactory | None = None,
        globber: GlobMatcher | None = None,
    ) -> None:
        self.store = store
        self.index = index if index is not None else SearchIndexManager()
        self.scan_defaults = scan_defaults or ScanConfig()
        self.jobs = ScanJobManager(self.store, self.index, scanner_factory=scanner_factory)
        self._globber = globber or GlobMatcher()

    @classmethod
    def from_config(
        cls,
        config: RepodexConfig,
        *,
        scanner_factory: ScannerFactory | None = None,
    ) -> "ProjectCatalog":
        """Build a catalog from resolved configuration."""
        store = ProjectStore(
            Path(config.store.data_dir),
            debounce_seconds=config.store.debounce_seconds,
        )
        index = SearchIndexManager(
            threshold=config.search.threshold,
            min_match_length=config.search.min_match_length,
            default_limit=config.search.default_limit,
        )
        scan_defaults = ScanConfig.model_validate(
            {
                "paths": [
                    entry if isinstance(entry, str) else entry.model_dump()
                    for entry in config.scan.paths
                ],
                "ignored_patterns": list(config.scan.ignored_patterns),
                "max_depth": config.scan.max_depth,
                "min_size_bytes": config.scan.min_size_bytes,
                "git_timeout_seconds": config.scan.git_timeout_seconds,
            }
        )
        return cls(store, index=index, scan_defaults=scan_defaults, scanner_factory=scanner_factory)

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #

    def open(self) -> "ProjectCatalog":
        self.store.load()
        self.index.build_index(self.store.get_all_projects())
        LOGGER.debug("Catalog opened with %d projects", len(self.index))
        return self

    def close(self) -> None:
        self.jobs.shutdown()
        self.store.close()

    def __enter__(self) -> "ProjectCatalog":
        return self.open()

    def __exit__(self, *_: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Projects                                                           #
    # ------------------------------------------------------------------ #

    def list_projects(
        self,
        query: str | None = None,
        *,
        filters: ProjectFilters | None = None,
        sort: SortSpec | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> ProjectPage:
        """List projects, ranked by fuzzy relevance when ``query`` is non-empty.

        Raises:
            InvalidInputError: If paging parameters are not positive.
        """
        if page < 1 or page_size < 1:
            raise InvalidInputError("page and page_size must be positive")
        if not query or not query.strip():
            return self.index.get_all(filters, sort, page=page, page_size=page_size)

        matches = self.index.search(query, limit=max(len(self.index), 1))
        if filters is not None:
            matches = [project for project in matches if filters.matches(project)]
        if sort is not None:
            matches = sort_projects(matches, sort)
        start = (page - 1) * page_size
        return ProjectPage(
            projects=matches[start : start + page_size],
            total=len(matches),
            page=page,
            page_size=page_size,
        )

    def get_project(self, project_id: str) -> Project:
        """Return the project with ``project_id``.

        Raises:
            ProjectNotFoundError: If no such project exists.
        """
        project = self.store.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(f"Project not found: {project_id}")
        return project

    def update_project(self, project_id: str, updates: Mapping[str, Any]) -> Project:
        """Apply user edits to a project and refresh the index.

        Raises:
            ProjectNotFoundError: If no such project exists.
            InvalidInputError: If the updated values fail validation.
        """
        if not updates:
            raise InvalidInputError("No updates supplied")
        with self.jobs.write_lock:
            try:
                updated = self.store.update_project(project_id, updates)
            except ValidationError as exc:
                raise InvalidInputError(f"Invalid update for {project_id}: {exc}") from exc
            if updated is None:
                raise ProjectNotFoundError(f"Project not found: {project_id}")
            self.index.update_project(updated)
        return updated

    def delete_project(self, project_id: str) -> None:
        """Remove a project from the store and index.

        Raises:
            ProjectNotFoundError: If no such project exists.
        """
        with self.jobs.write_lock:
            if not self.store.delete_project(project_id):
                raise ProjectNotFoundError(f"Project not found: {project_id}")
            self.index.remove_project(project_id)

    # ------------------------------------------------------------------ #
    # Scanning                                                           #
    # ------------------------------------------------------------------ #

    def start_scan(
        self,
        paths: Sequence[ScanPathInput] | None = None,
        **overrides: Any,
    ) -> str:
        """Start a background scan and return its job id.

        Args:
            paths: Roots to scan; the configured roots are used when omitted.
            **overrides: Other :class:`ScanConfig` fields to override.

        Raises:
            InvalidInputError: If no roots are available or overrides are invalid.
        """
        payload = self.scan_defaults.model_dump()
        if paths:
            payload["paths"] = list(paths)
        payload.update(overrides)
        try:
            config = ScanConfig.model_validate(payload)
        except ValidationError as exc:
            raise InvalidInputError(f"Invalid scan configuration: {exc}") from exc
        if not config.paths:
            raise InvalidInputError("No scan paths configured")
        return self.jobs.start_scan(config)

    def scan_status(self, job_id: str) -> ScanStatusReport:
        """Return a display summary of ``job_id``.

        Raises:
            ProjectNotFoundError: If the job id is unknown.
        """
        job = self.jobs.get_job_status(job_id)
        if job is None:
            raise ProjectNotFoundError(f"Scan job not found: {job_id}")
        return _status_report(job)

    def cancel_scan(self, job_id: str) -> bool:
        return self.jobs.cancel_scan(job_id)

    def wait_for_scan(self, job_id: str, timeout: float | None = None) -> ScanStatusReport:
        self.jobs.wait(job_id, timeout)
        return self.scan_status(job_id)

    # ------------------------------------------------------------------ #
    # Import / export                                                    #
    # ------------------------------------------------------------------ #

    def export_to(self, path: Path) -> int:
        """Write the catalog document to ``path`` and return the project count.

        Raises:
            CatalogError: If the file cannot be written.
        """
        document = self.store.export()
        target = Path(path).expanduser()
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(json.dumps(document, indent=2), encoding="utf-8")
        except OSError as exc:
            raise CatalogError(f"Unable to write export file {target}: {exc}") from exc
        LOGGER.info("Exported %d projects to %s", len(document["projects"]), target)
        return len(document["projects"])

    def preview_import(self, path: Path) -> ImportPreview:
        """Describe the contents of an import file without applying it."""
        document = self._read_import(path)
        return ImportPreview(
            version=document.meta.version,
            count=len(document.projects),
            projects=document.projects[:PREVIEW_LIMIT],
        )

    def import_from(
        self,
        path: Path,
        *,
        mode: ImportMode = "replace",
        on_conflict: ConflictPolicy = "overwrite",
    ) -> ImportSummary:
        """Import projects from a previously exported file.

        Args:
            path: Export file to read.
            mode: ``replace`` swaps the whole catalog; ``merge`` upserts each record.
            on_conflict: For ``merge``, whether records matching an existing id
                or path overwrite it or are skipped.

        Raises:
            InvalidInputError: If the file is missing, unreadable, or invalid.
            CatalogError: If the imported catalog cannot be persisted.
        """
        if mode not in ("replace", "merge"):
            raise InvalidInputError(f"Unknown import mode: {mode}")
        if on_conflict not in ("overwrite", "skip"):
            raise InvalidInputError(f"Unknown conflict policy: {on_conflict}")
        document = self._read_import(path)
        summary = ImportSummary(mode=mode, total=len(document.projects))
        with self.jobs.write_lock:
            try:
                if mode == "replace":
                    self.store.import_document(document)
                    summary.imported = len(document.projects)
                else:
                    existing = self.store.get_all_projects()
                    known_ids = {project.id for project in existing}
                    known_paths = {project.path for project in existing}
                    for project in document.projects:
                        conflict = project.id in known_ids or project.path in known_paths
                        if conflict and on_conflict == "skip":
                            summary.skipped += 1
                            continue
                        self.store.upsert_project(project)
                        summary.imported += 1
                    self.store.flush()
            except StoreError as exc:
                raise CatalogError(f"Import failed: {exc}") from exc
            self.index.build_index(self.store.get_all_projects())
        LOGGER.info(
            "Imported %d projects (%d skipped) from %s", summary.imported, summary.skipped, path
        )
        return summary

    def _read_import(self, path: Path) -> ProjectsDocument:
        source = Path(path).expanduser()
        try:
            payload = json.loads(source.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise InvalidInputError(f"Import file not found: {source}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise InvalidInputError(f"Unable to read import file {source}: {exc}") from exc
        try:
            return ProjectsDocument.model_validate(migrate(payload))
        except (TypeError, ValidationError) as exc:
            raise InvalidInputError(f"Invalid import file {source}: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Maintenance                                                        #
    # ------------------------------------------------------------------ #

    def clear(self) -> None:
        """Remove every project from the store and index."""
        with self.jobs.write_lock:
            try:
                self.store.clear()
            except StoreError as exc:
                raise CatalogError(f"Unable to clear catalog: {exc}") from exc
            self.index.build_index([])

    def touch_all(self, timestamp: datetime | None = None) -> int:
        """Set ``last_modified_at`` on every project; returns the number touched.

        Touched projects are marked ``user-modified`` like any other edit.
        """
        moment = timestamp or utcnow()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        with self.jobs.write_lock:
            touched = 0
            for project in self.store.get_all_projects():
                if self.store.update_project(project.id, {"last_modified_at": moment}) is not None:
                    touched += 1
            self._persist_and_reindex()
        return touched

    def refresh_modified_from_fs(self) -> int:
        """Recompute ``last_modified_at`` from file mtimes.

        Projects whose directory no longer exists are left untouched.

        Returns:
            int: Number of projects whose timestamp actually changed.
        """
        with self.jobs.write_lock:
            refreshed = 0
            for project in self.store.get_all_projects():
                latest = self._latest_mtime(Path(project.path))
                if latest is None:
                    LOGGER.debug("Skipping refresh of %s: path unavailable", project.path)
                    continue
                if latest == project.last_modified_at:
                    continue
                if self.store.update_project(project.id, {"last_modified_at": latest}) is not None:
                    refreshed += 1
            self._persist_and_reindex()
        return refreshed

    def _latest_mtime(self, path: Path) -> datetime | None:
        try:
            latest = path.stat().st_mtime
        except OSError:
            return None
        for entry in self._globber.iter_matches(
            "**/*",
            cwd=path,
            deep=MODIFIED_SCAN_DEPTH,
            ignore=MODIFIED_SCAN_IGNORES,
            follow_symlinks=False,
            stats=True,
        ):
            if isinstance(entry, GlobEntry):
                latest = max(latest, entry.stats.st_mtime)
        return datetime.fromtimestamp(latest, tz=timezone.utc)

    def _persist_and_reindex(self) -> None:
        try:
            self.store.flush()
        except StoreError as exc:
            raise CatalogError(f"Unable to persist catalog: {exc}") from exc
        self.index.build_index(self.store.get_all_projects())


def _status_report(job: ScanJob) -> ScanStatusReport:
    progress = job.progress
    if job.status == "complete":
        percent = 100
    elif progress.discovered:
        percent = min(100, int(progress.processed * 100 / progress.discovered))
    else:
        percent = 0
    return ScanStatusReport(
        job_id=job.id,
        status=job.status,
        percent=percent,
        discovered=progress.discovered,
        processed=progress.processed,
        current_path=progress.current_path,
        errors=list(job.result.errors) if job.result else [],
        stats=job.result.stats if job.result else None,
        error=job.error,
    )


__all__ = [
    "ConflictPolicy",
    "ImportMode",
    "ImportPreview",
    "ImportSummary",
    "MODIFIED_SCAN_DEPTH",
    "PREVIEW_LIMIT",
    "ProjectCatalog",
    "ScanStatusReport",
]
