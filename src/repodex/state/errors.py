"""Project store errors."""


class StoreError(Exception):
    """Base exception for project store operations."""


class StoreReadError(StoreError):
    """Raised when a stored document cannot be read or parsed."""


class StoreWriteError(StoreError):
    """Raised when a forced flush cannot durably persist the document."""
