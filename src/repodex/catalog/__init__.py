"""Catalog service: the operations exposed by the CLI."""

from .errors import CatalogError, InvalidInputError, ProjectNotFoundError
from .service import (
    ConflictPolicy,
    ImportMode,
    ImportPreview,
    ImportSummary,
    ProjectCatalog,
    ScanStatusReport,
)

__all__ = [
    "CatalogError",
    "ConflictPolicy",
    "ImportMode",
    "ImportPreview",
    "ImportSummary",
    "InvalidInputError",
    "ProjectCatalog",
    "ProjectNotFoundError",
    "ScanStatusReport",
]
