"""Background scan jobs."""

from .manager import ProgressSubscriber, ScanJobManager, ScannerFactory, ScanRunner
from .models import JobStatus, ScanJob

__all__ = [
    "JobStatus",
    "ProgressSubscriber",
    "ScanJob",
    "ScanJobManager",
    "ScanRunner",
    "ScannerFactory",
]
