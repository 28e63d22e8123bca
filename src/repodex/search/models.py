"""Query, filter, and result models for catalog listing."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from repodex.state.models import Project, ProjectProvider, ProjectType

DEFAULT_PAGE_SIZE = 50


class ProjectFilters(BaseModel):
    """Exact-match filters applied when listing projects.

    Attributes:
        type: Keep projects of this type.
        provider: Keep projects hosted by this provider.
        tags: Keep projects carrying any of these tags.
        importance: Keep projects with exactly this importance.
    """

    model_config = ConfigDict(extra="forbid")

    type: Optional[ProjectType] = None
    provider: Optional[ProjectProvider] = None
    tags: List[str] = Field(default_factory=list)
    importance: Optional[int] = Field(default=None, ge=0, le=5)

    def matches(self, project: Project) -> bool:
        """Return whether ``project`` passes every configured filter."""
        if self.type is not None and project.type != self.type:
            return False
        if self.provider is not None and project.provider != self.provider:
            return False
        if self.tags and not set(self.tags).intersection(project.tags):
            return False
        if self.importance is not None and project.importance != self.importance:
            return False
        return True


class SortSpec(BaseModel):
    """Single-key sort order over a project attribute."""

    model_config = ConfigDict(frozen=True)

    field: str
    descending: bool = False

    @field_validator("field")
    @classmethod
    def _known_field(cls, value: str) -> str:
        aliases = {(info.alias or name): name for name, info in Project.model_fields.items()}
        name = aliases.get(value, value)
        if name not in Project.model_fields:
            raise ValueError(f"Unknown sort field: {value}")
        return name

    @classmethod
    def parse(cls, expression: str) -> "SortSpec":
        """Parse ``name`` or ``-name`` (descending); camelCase names are accepted.

        Raises:
            ValueError: If the expression is empty or names an unknown field.
        """
        expression = expression.strip()
        descending = expression.startswith("-")
        name = expression.lstrip("+-")
        if not name:
            raise ValueError("Sort expression must name a field")
        return cls(field=name, descending=descending)


class ProjectPage(BaseModel):
    """One page of listing results."""

    projects: List[Project] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def pages(self) -> int:
        if self.page_size <= 0:
            return 1
        return max(1, -(-self.total // self.page_size))


class SearchHit(BaseModel):
    """A ranked search result."""

    project: Project
    score: float


__all__ = ["DEFAULT_PAGE_SIZE", "ProjectFilters", "ProjectPage", "SearchHit", "SortSpec"]
