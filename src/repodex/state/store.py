"""Durable JSON persistence for the project catalog."""

from __future__ import annotations

import json
import logging
import os
import queue
import shutil
import threading
import time
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from pydantic import ValidationError

from .errors import StoreReadError, StoreWriteError
from .migrations import migrate
from .models import Project, ProjectsDocument, StoreMeta, utcnow

LOGGER = logging.getLogger(__name__)

DEFAULT_FILENAME = "projects.json"
DEFAULT_DEBOUNCE_SECONDS = 0.5

_STOP = object()


class _DebouncedWriter:
    """Single writer thread that coalesces write requests into one flush.

    Each :meth:`schedule` call pushes the deadline out by ``delay`` seconds;
    the flush runs once the queue has been quiet until the deadline passes.
    """

    def __init__(self, flush: Callable[[], None], delay: float, *, name: str) -> None:
        self._flush = flush
        self._delay = max(0.0, delay)
        self._name = name
        self._queue: queue.Queue[object] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._start_lock = threading.Lock()

    def schedule(self) -> None:
        with self._start_lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
                self._thread.start()
        self._queue.put(None)

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._start_lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self._queue.put(_STOP)
        thread.join(timeout=timeout)

    def _run(self) -> None:
        deadline: Optional[float] = None
        while True:
            timeout: Optional[float] = None
            if deadline is not None:
                timeout = max(0.0, deadline - time.monotonic())
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                deadline = None
                self._flush()
                continue
            if item is _STOP:
                return
            deadline = time.monotonic() + self._delay


class ProjectStore:
    """Keyed collection of projects persisted as a single JSON document.

    The canonical file is only ever replaced through an atomic rename of a
    fully written ``.tmp`` sibling; the previous canonical file is copied to
    ``.bak`` before each replacement. Mutations are applied in memory and
    written by a debounced background writer; :meth:`flush` writes
    immediately and raises on failure.
    """

    def __init__(
        self,
        data_dir: Path,
        *,
        filename: str = DEFAULT_FILENAME,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        """Initialize the store without touching the filesystem.

        Args:
            data_dir: Directory that holds the document and its siblings.
            filename: Name of the canonical document.
            debounce_seconds: Quiet period before coalesced writes are flushed.
        """
        self._data_dir = Path(data_dir).expanduser()
        self._path = self._data_dir / filename
        self._backup_path = self._data_dir / f"{filename}.bak"
        self._tmp_path = self._data_dir / f"{filename}.tmp"
        self._corrupt_path = self._data_dir / f"{filename}.corrupt"
        self._lock = threading.RLock()
        self._document: ProjectsDocument | None = None
        self._dirty = False
        self._writer = _DebouncedWriter(
            self._flush_scheduled, debounce_seconds, name="repodex-store-writer"
        )

    @property
    def path(self) -> Path:
        """Return the canonical document path."""
        return self._path

    @property
    def backup_path(self) -> Path:
        """Return the backup document path."""
        return self._backup_path

    @property
    def corrupt_path(self) -> Path:
        """Return where unreadable documents are copied before being replaced."""
        return self._corrupt_path

    @property
    def tmp_path(self) -> Path:
        """Return the transient write target path."""
        return self._tmp_path

    @property
    def loaded(self) -> bool:
        """Return whether a document is held in memory."""
        return self._document is not None

    # ------------------------------------------------------------------ #
    # Loading                                                            #
    # ------------------------------------------------------------------ #

    def load(self) -> ProjectsDocument:
        """Load the document, recovering from the backup or resetting when needed.

        Records that still fail validation after migration are dropped and
        logged; the file they came from is copied to ``.corrupt`` first. The
        same copy is taken before a reset replaces an unreadable file.

        Returns:
            ProjectsDocument: Deep copy of the loaded document.
        """
        with self._lock:
            try:
                self._document = self._read(self._path)
            except FileNotFoundError:
                LOGGER.info("No project store at %s; creating an empty one", self._path)
                self._document = ProjectsDocument.empty()
                self._persist_after_load(backup=True)
            except StoreReadError as exc:
                LOGGER.warning("Project store %s is unreadable (%s); trying backup", self._path, exc)
                self._set_aside(self._path)
                self._recover_from_backup()
            else:
                LOGGER.info("Loaded %d projects from %s", len(self._document.projects), self._path)
            return self._document.model_copy(deep=True)

    def _recover_from_backup(self) -> None:
        try:
            self._document = self._read(self._backup_path)
        except (FileNotFoundError, StoreReadError) as exc:
            LOGGER.error("Backup %s is unusable (%s); starting with an empty store", self._backup_path, exc)
            self._document = ProjectsDocument.empty()
            self._persist_after_load(backup=False)
            return
        LOGGER.info("Recovered %d projects from backup", len(self._document.projects))
        self._persist_after_load(backup=False)

    def _persist_after_load(self, *, backup: bool) -> None:
        try:
            self._write(backup=backup)
        except StoreWriteError:
            LOGGER.warning("Continuing with in-memory project store; disk write failed")

    def _set_aside(self, source: Path) -> None:
        try:
            shutil.copy2(source, self._corrupt_path)
        except FileNotFoundError:
            return
        except OSError as exc:
            LOGGER.warning("Failed to keep a copy of %s: %s", source, exc)
            return
        LOGGER.warning("Kept a copy of %s at %s", source, self._corrupt_path)

    def _read(self, path: Path) -> ProjectsDocument:
        try:
            raw_text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise
        except OSError as exc:
            raise StoreReadError(f"Cannot read {path}: {exc}") from exc
        try:
            payload = migrate(json.loads(raw_text))
        except (json.JSONDecodeError, TypeError) as exc:
            raise StoreReadError(f"Invalid project document in {path}: {exc}") from exc

        try:
            meta = StoreMeta.model_validate(payload["meta"])
        except ValidationError as exc:
            LOGGER.warning("Invalid metadata in %s (%s); using defaults", path, exc)
            meta = StoreMeta(version=payload["meta"]["version"])

        projects: list[Project] = []
        dropped = 0
        for record in payload["projects"]:
            try:
                projects.append(Project.model_validate(record))
            except ValidationError as exc:
                dropped += 1
                LOGGER.error("Dropping invalid project %r from %s: %s", record.get("id"), path, exc)
        if dropped:
            self._set_aside(path)
        meta.project_count = len(projects)
        return ProjectsDocument(meta=meta, projects=projects)

    def _ensure_loaded(self) -> ProjectsDocument:
        if self._document is None:
            self.load()
        assert self._document is not None
        return self._document

    # ------------------------------------------------------------------ #
    # Queries                                                            #
    # ------------------------------------------------------------------ #

    def get_all_projects(self) -> list[Project]:
        """Return deep copies of every stored project in insertion order."""
        with self._lock:
            document = self._ensure_loaded()
            return [project.model_copy(deep=True) for project in document.projects]

    def get_project(self, project_id: str) -> Project | None:
        """Return a copy of the project with ``project_id`` or None."""
        with self._lock:
            document = self._ensure_loaded()
            for project in document.projects:
                if project.id == project_id:
                    return project.model_copy(deep=True)
            return None

    # ------------------------------------------------------------------ #
    # Mutations                                                          #
    # ------------------------------------------------------------------ #

    def upsert_project(self, project: Project) -> None:
        """Insert or replace a project, matching by id and then by path."""
        with self._lock:
            document = self._ensure_loaded()
            index = next(
                (i for i, existing in enumerate(document.projects) if existing.id == project.id),
                None,
            )
            if index is None:
                index = next(
                    (i for i, existing in enumerate(document.projects) if existing.path == project.path),
                    None,
                )
                if index is not None:
                    LOGGER.info(
                        "Project at %s stored under id %s; replacing with %s",
                        project.path,
                        document.projects[index].id,
                        project.id,
                    )

            stored = project.model_copy(deep=True)
            if index is None:
                document.projects.append(stored)
            else:
                document.projects[index] = stored
            document.meta.project_count = len(document.projects)
            document.meta.last_scan_at = utcnow()
            self._mark_dirty()

    def update_project(self, project_id: str, updates: Mapping[str, Any]) -> Project | None:
        """Apply a partial update and mark the project as user-modified.

        Args:
            project_id: Identifier of the project to update.
            updates: Field values keyed by attribute name or stored (camelCase) key.

        Returns:
            Project | None: Updated copy, or None when the id is unknown.

        Raises:
            pydantic.ValidationError: If the updated values are invalid.
        """
        with self._lock:
            document = self._ensure_loaded()
            for index, project in enumerate(document.projects):
                if project.id != project_id:
                    continue
                merged = project.model_dump(mode="python")
                merged.update(_normalize_update_keys(updates))
                merged["id"] = project.id
                merged["scan_status"] = "user-modified"
                updated = Project.model_validate(merged)
                document.projects[index] = updated
                self._mark_dirty()
                return updated.model_copy(deep=True)
            return None

    def delete_project(self, project_id: str) -> bool:
        """Remove a project by id, returning whether anything was deleted."""
        with self._lock:
            document = self._ensure_loaded()
            remaining = [project for project in document.projects if project.id != project_id]
            if len(remaining) == len(document.projects):
                return False
            document.projects = remaining
            document.meta.project_count = len(remaining)
            self._mark_dirty()
            return True

    def clear(self) -> None:
        """Reset to an empty document and write it immediately."""
        with self._lock:
            self._document = ProjectsDocument.empty()
            self.flush()

    def _mark_dirty(self) -> None:
        self._dirty = True
        self._writer.schedule()

    # ------------------------------------------------------------------ #
    # Persistence                                                        #
    # ------------------------------------------------------------------ #

    def flush(self) -> None:
        """Write the current document to disk immediately.

        Raises:
            StoreWriteError: If the document cannot be durably written.
        """
        with self._lock:
            if self._document is None:
                return
            self._write(backup=True)

    def _flush_scheduled(self) -> None:
        with self._lock:
            if not self._dirty:
                return
            try:
                self.flush()
            except StoreWriteError:
                LOGGER.error("Debounced write of %s failed; changes remain in memory", self._path)

    def _write(self, *, backup: bool) -> None:
        assert self._document is not None
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(self._document.to_json_dict(), indent=2)
            with self._tmp_path.open("w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())

            if backup:
                try:
                    shutil.copy2(self._path, self._backup_path)
                except FileNotFoundError:
                    pass
                except OSError as exc:
                    LOGGER.warning("Failed to refresh backup %s: %s", self._backup_path, exc)

            os.replace(self._tmp_path, self._path)
        except OSError as exc:
            LOGGER.error("Failed to write project store %s: %s", self._path, exc)
            raise StoreWriteError(f"Failed to write {self._path}: {exc}") from exc

        self._dirty = False
        LOGGER.debug("Flushed %d projects to %s", len(self._document.projects), self._path)

    # ------------------------------------------------------------------ #
    # Export / import                                                    #
    # ------------------------------------------------------------------ #

    def export(self) -> dict[str, Any]:
        """Return a JSON-ready deep copy of the whole document."""
        with self._lock:
            return self._ensure_loaded().to_json_dict()

    def import_document(self, document: ProjectsDocument | Mapping[str, Any]) -> None:
        """Replace the stored document with ``document`` after migrating it.

        Raises:
            StoreReadError: If the document cannot be validated.
            StoreWriteError: If the replacement cannot be written.
        """
        raw = document.to_json_dict() if isinstance(document, ProjectsDocument) else document
        try:
            migrated = ProjectsDocument.model_validate(migrate(raw))
        except (TypeError, ValidationError) as exc:
            raise StoreReadError(f"Invalid project document: {exc}") from exc
        with self._lock:
            self._document = migrated
            self.flush()
        LOGGER.info("Imported %d projects", len(migrated.projects))

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        """Stop the background writer and flush any pending changes."""
        self._writer.stop()
        with self._lock:
            if self._dirty and self._document is not None:
                self.flush()

    def __enter__(self) -> "ProjectStore":
        self._ensure_loaded()
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _normalize_update_keys(updates: Mapping[str, Any]) -> dict[str, Any]:
    aliases = {
        (field.alias or name): name for name, field in Project.model_fields.items()
    }
    return {aliases.get(key, key): value for key, value in dict(updates).items()}


__all__ = ["DEFAULT_DEBOUNCE_SECONDS", "DEFAULT_FILENAME", "ProjectStore"]
