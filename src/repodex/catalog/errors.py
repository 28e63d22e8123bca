"""Errors raised by catalog operations."""


class CatalogError(Exception):
    """Base exception for catalog operations.

    Attributes:
        code: Machine-readable error identifier.
    """

    code = "INTERNAL_ERROR"


class ProjectNotFoundError(CatalogError):
    """Raised when a project id is unknown."""

    code = "NOT_FOUND"


class InvalidInputError(CatalogError):
    """Raised when caller-supplied data is malformed or out of range."""

    code = "INVALID_INPUT"


__all__ = ["CatalogError", "InvalidInputError", "ProjectNotFoundError"]
