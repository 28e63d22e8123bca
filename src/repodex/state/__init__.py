"""State persistence for the repodex project catalog."""

from .errors import StoreError, StoreReadError, StoreWriteError
from .migrations import migrate
from .models import (
    CURRENT_SCHEMA_VERSION,
    DEFAULT_IMPORTANCE,
    Project,
    ProjectsDocument,
    Remote,
    StoreMeta,
)
from .store import DEFAULT_DEBOUNCE_SECONDS, DEFAULT_FILENAME, ProjectStore

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "DEFAULT_DEBOUNCE_SECONDS",
    "DEFAULT_FILENAME",
    "DEFAULT_IMPORTANCE",
    "Project",
    "ProjectStore",
    "ProjectsDocument",
    "Remote",
    "StoreError",
    "StoreMeta",
    "StoreReadError",
    "StoreWriteError",
    "migrate",
]
