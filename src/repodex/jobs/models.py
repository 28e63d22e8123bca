"""Models describing background scan jobs."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from repodex.scanning.models import ScanProgress, ScanResult
from repodex.state.models import CamelModel, utcnow

JobStatus = Literal["running", "complete", "error", "cancelled"]


class ScanJob(CamelModel):
    """State of one background scan.

    Attributes:
        id: Job identifier returned by ``start_scan``.
        status: Lifecycle state; at most one job is ``running`` at a time.
        progress: Latest progress notification.
        started_at: When the job was started.
        completed_at: When the job left the ``running`` state.
        result: Scan output, set only for ``complete`` jobs.
        error: Failure message, set only for ``error`` jobs.
    """

    id: str
    status: JobStatus = "running"
    progress: ScanProgress = Field(default_factory=ScanProgress)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    result: Optional[ScanResult] = None
    error: Optional[str] = None


__all__ = ["JobStatus", "ScanJob"]
