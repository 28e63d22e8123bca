"""Persisted data models for the project catalog."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CURRENT_SCHEMA_VERSION = 2
DEFAULT_IMPORTANCE = 3

ProjectType = Literal["git", "local"]
RemoteProvider = Literal["github", "gitlab", "bitbucket"]
ProjectProvider = Literal["github", "gitlab", "bitbucket", "other"]
ScanStatus = Literal["complete", "pending", "scanning", "error", "user-modified"]


def utcnow() -> datetime:
    """Return the current timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def project_id_for_path(path: str) -> str:
    """Return the stable identifier derived from a canonical project path."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"file://{path}"))


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, as stored on disk."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        """Return a JSON-ready mapping using on-disk key names."""
        return self.model_dump(mode="json", by_alias=True)


class Remote(CamelModel):
    """A git remote with provider details parsed from its URL."""

    name: str
    url: str
    provider: Optional[RemoteProvider] = None
    owner: Optional[str] = None
    repo: Optional[str] = None


class Project(CamelModel):
    """A discovered codebase and its user-editable metadata.

    Unknown keys found in stored records are kept so that newer documents
    round-trip through older builds without data loss.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    name: str
    path: str
    type: ProjectType = "local"
    tags: List[str] = Field(default_factory=list)
    importance: int = Field(default=DEFAULT_IMPORTANCE, ge=0, le=5)
    size_bytes: int = 0
    file_count: int = 0
    created_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None
    provider: Optional[ProjectProvider] = None
    last_commit_hash: Optional[str] = None
    branch: Optional[str] = None
    remotes: List[Remote] = Field(default_factory=list)
    readme_files: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    language: Optional[str] = None
    scan_status: ScanStatus = "complete"
    last_scanned_at: Optional[datetime] = None
    scan_errors: List[str] = Field(default_factory=list)


class StoreMeta(CamelModel):
    """Document-level bookkeeping."""

    version: int = CURRENT_SCHEMA_VERSION
    last_scan_at: datetime = Field(default_factory=utcnow)
    project_count: int = 0


class ProjectsDocument(CamelModel):
    """The complete persisted catalog."""

    meta: StoreMeta = Field(default_factory=StoreMeta)
    projects: List[Project] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "ProjectsDocument":
        """Return a fresh document at the current schema version."""
        return cls(meta=StoreMeta(version=CURRENT_SCHEMA_VERSION, project_count=0))


__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "DEFAULT_IMPORTANCE",
    "CamelModel",
    "Project",
    "ProjectProvider",
    "ProjectType",
    "ProjectsDocument",
    "Remote",
    "RemoteProvider",
    "ScanStatus",
    "StoreMeta",
    "project_id_for_path",
    "utcnow",
]
