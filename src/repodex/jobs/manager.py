"""Single-flight background scan orchestration."""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Callable, Iterable, Optional, Protocol

from repodex.scanning import ScanConfig, Scanner, ScanProgress, ScanResult
from repodex.search import SearchIndexManager
from repodex.state import ProjectStore
from repodex.state.models import Project, utcnow

from .models import ScanJob

LOGGER = logging.getLogger(__name__)

MAX_FINISHED_JOBS = 20

ProgressSubscriber = Callable[[str, ScanProgress], None]


class ScanRunner(Protocol):
    """The part of :class:`~repodex.scanning.Scanner` the job manager drives."""

    def scan(self) -> ScanResult: ...

    def cancel(self) -> None: ...

    def set_progress_callback(self, callback: Optional[Callable[[ScanProgress], None]]) -> None: ...


ScannerFactory = Callable[[ScanConfig, Iterable[Project]], ScanRunner]


def _default_scanner_factory(config: ScanConfig, existing: Iterable[Project]) -> ScanRunner:
    return Scanner(config, existing)


class ScanJobManager:
    """Run at most one scan at a time and commit its results.

    Starting a scan while another is running cancels the running job. A job's
    result is committed to the store and index only when the job is still the
    tracked job and still ``running`` once its scan returns. Only the most
    recent :data:`MAX_FINISHED_JOBS` finished jobs stay queryable.

    :attr:`write_lock` is held while a result is written to the store and
    index. Any other code that changes both must hold it as well.
    """

    def __init__(
        self,
        store: ProjectStore,
        index: SearchIndexManager,
        *,
        scanner_factory: ScannerFactory | None = None,
    ) -> None:
        self._store = store
        self._index = index
        self._scanner_factory = scanner_factory or _default_scanner_factory
        self._lock = threading.Lock()
        self.write_lock = threading.RLock()
        self._jobs: dict[str, ScanJob] = {}
        self._threads: dict[str, threading.Thread] = {}
        self._current_id: str | None = None
        self._current_scanner: ScanRunner | None = None
        self._subscribers: list[ProgressSubscriber] = []

    @property
    def current_job_id(self) -> str | None:
        with self._lock:
            return self._current_id

    def start_scan(self, config: ScanConfig) -> str:
        """Start a scan on a daemon thread and return its job id immediately."""
        with self._lock:
            self._cancel_current_locked()
            self._prune_locked()
            existing = self._store.get_all_projects()
            job_id = uuid.uuid4().hex
            scanner = self._scanner_factory(config, existing)
            scanner.set_progress_callback(lambda progress: self._record_progress(job_id, progress))
            self._jobs[job_id] = ScanJob(id=job_id)
            self._current_id = job_id
            self._current_scanner = scanner
            thread = threading.Thread(
                target=self._run,
                args=(job_id, scanner),
                name=f"repodex-scan-{job_id[:8]}",
                daemon=True,
            )
            self._threads[job_id] = thread
            thread.start()
        LOGGER.info("Started scan job %s", job_id)
        return job_id

    def cancel_scan(self, job_id: str) -> bool:
        """Cancel ``job_id`` if it is the running job."""
        with self._lock:
            if job_id != self._current_id:
                return False
            return self._cancel_current_locked()

    def get_job_status(self, job_id: str) -> ScanJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job is not None else None

    def on_progress(self, callback: ProgressSubscriber) -> Callable[[], None]:
        """Subscribe to progress notifications; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def wait(self, job_id: str, timeout: float | None = None) -> bool:
        """Block until the job's thread exits; returns False on timeout or unknown id."""
        with self._lock:
            thread = self._threads.get(job_id)
            known = job_id in self._jobs
        if thread is None:
            return known
        thread.join(timeout)
        return not thread.is_alive()

    def shutdown(self, timeout: float | None = 5.0) -> None:
        """Cancel the running job and join every scan thread."""
        with self._lock:
            self._cancel_current_locked()
            threads = list(self._threads.values())
        for thread in threads:
            thread.join(timeout)

    # ------------------------------------------------------------------ #
    # Internals                                                          #
    # ------------------------------------------------------------------ #

    def _prune_locked(self) -> None:
        for job_id, thread in list(self._threads.items()):
            if not thread.is_alive():
                del self._threads[job_id]
        finished = [
            job_id
            for job_id, job in self._jobs.items()
            if job.status != "running" and job_id not in self._threads
        ]
        for job_id in finished[: max(0, len(finished) - MAX_FINISHED_JOBS)]:
            del self._jobs[job_id]

    def _cancel_current_locked(self) -> bool:
        job = self._jobs.get(self._current_id) if self._current_id else None
        if job is None or job.status != "running":
            return False
        if self._current_scanner is not None:
            self._current_scanner.cancel()
        job.status = "cancelled"
        job.completed_at = utcnow()
        LOGGER.info("Cancelled scan job %s", job.id)
        return True

    def _record_progress(self, job_id: str, progress: ScanProgress) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                job.progress = progress.model_copy()
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            try:
                subscriber(job_id, progress.model_copy())
            except Exception:
                LOGGER.exception("Progress subscriber failed for job %s", job_id)

    def _run(self, job_id: str, scanner: ScanRunner) -> None:
        try:
            result = scanner.scan()
        except Exception as exc:
            LOGGER.exception("Scan job %s failed", job_id)
            self._fail(job_id, exc)
            return

        # write_lock is always taken before _lock
        with self.write_lock, self._lock:
            job = self._jobs[job_id]
            if job_id != self._current_id or job.status != "running":
                LOGGER.info("Discarding result of superseded scan job %s", job_id)
                return
            try:
                self._commit(result)
            except Exception as exc:
                LOGGER.exception("Committing scan job %s failed", job_id)
                job.status = "error"
                job.error = str(exc) or type(exc).__name__
                job.completed_at = utcnow()
                return
            job.status = "complete"
            job.result = result
            job.completed_at = utcnow()
            self._current_scanner = None
        LOGGER.info(
            "Scan job %s complete: %d projects, %d errors",
            job_id,
            len(result.projects),
            len(result.errors),
        )

    def _commit(self, result: ScanResult) -> None:
        for project in result.projects:
            self._store.upsert_project(project)
        self._store.flush()
        self._index.build_index(self._store.get_all_projects())

    def _fail(self, job_id: str, exc: BaseException) -> None:
        with self._lock:
            job = self._jobs[job_id]
            if job.status != "running":
                return
            job.status = "error"
            job.error = str(exc) or type(exc).__name__
            job.completed_at = utcnow()
            if job_id == self._current_id:
                self._current_scanner = None


__all__ = ["MAX_FINISHED_JOBS", "ProgressSubscriber", "ScanJobManager", "ScanRunner", "ScannerFactory"]
