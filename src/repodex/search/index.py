"""In-memory fuzzy index over the project catalog."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from rapidfuzz import fuzz

from repodex.state.models import Project

from .models import DEFAULT_PAGE_SIZE, ProjectFilters, ProjectPage, SearchHit, SortSpec
from .text import join_terms, normalize_search_text

LOGGER = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.4
DEFAULT_MIN_MATCH_LENGTH = 2
DEFAULT_SEARCH_LIMIT = 50
FIELD_WEIGHTS: Mapping[str, float] = {
    "name": 0.4,
    "path": 0.3,
    "description": 0.2,
    "tags": 0.1,
}


@dataclass(slots=True)
class _IndexedProject:
    project: Project
    fields: dict[str, str]


def _index_fields(project: Project) -> dict[str, str]:
    return {
        "name": normalize_search_text(project.name),
        "path": normalize_search_text(project.path),
        "description": normalize_search_text(project.description),
        "tags": join_terms(project.tags),
    }


class SearchIndexManager:
    """Hold the project list and a fuzzy index derived from it.

    The index is never authoritative: every change to the list rebuilds it.
    """

    def __init__(
        self,
        *,
        threshold: float = DEFAULT_THRESHOLD,
        min_match_length: int = DEFAULT_MIN_MATCH_LENGTH,
        weights: Mapping[str, float] | None = None,
        default_limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be between 0 and 1")
        self.threshold = threshold
        self.min_match_length = max(1, min_match_length)
        self.weights = dict(weights or FIELD_WEIGHTS)
        self.default_limit = max(1, default_limit)
        self._lock = threading.RLock()
        self._projects: list[Project] = []
        self._entries: list[_IndexedProject] = []

    # ------------------------------------------------------------------ #
    # Maintenance                                                        #
    # ------------------------------------------------------------------ #

    def build_index(self, projects: Iterable[Project]) -> None:
        """Replace the project list and rebuild the index from scratch."""
        with self._lock:
            self._projects = [project.model_copy(deep=True) for project in projects]
            self._rebuild()
        LOGGER.debug("Search index rebuilt with %d projects", len(self._projects))

    def add_project(self, project: Project) -> None:
        with self._lock:
            self._projects.append(project.model_copy(deep=True))
            self._rebuild()

    def update_project(self, project: Project) -> bool:
        """Replace the project with the same id, adding it when unknown.

        Returns:
            bool: True when an existing entry was replaced, False when added.
        """
        with self._lock:
            for index, existing in enumerate(self._projects):
                if existing.id == project.id:
                    self._projects[index] = project.model_copy(deep=True)
                    self._rebuild()
                    return True
            self.add_project(project)
            return False

    def remove_project(self, project_id: str) -> bool:
        with self._lock:
            remaining = [project for project in self._projects if project.id != project_id]
            if len(remaining) == len(self._projects):
                return False
            self._projects = remaining
            self._rebuild()
            return True

    def _rebuild(self) -> None:
        self._entries = [
            _IndexedProject(project=project, fields=_index_fields(project))
            for project in self._projects
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._projects)

    # ------------------------------------------------------------------ #
    # Queries                                                            #
    # ------------------------------------------------------------------ #

    def rank(self, query: str) -> list[SearchHit]:
        """Return projects matching ``query`` with their weighted relevance.

        A field matches when its fuzzy distance (``1 - partial_ratio / 100``)
        is within the threshold. The score sums ``weight * (1 - distance)``
        over matching fields. Ties keep list order.
        """
        needle = normalize_search_text(query)
        if len(needle) < self.min_match_length:
            return []
        hits: list[SearchHit] = []
        with self._lock:
            for entry in self._entries:
                score = self._score(needle, entry.fields)
                if score is not None:
                    hits.append(SearchHit(project=entry.project.model_copy(deep=True), score=score))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits

    def _score(self, needle: str, fields: Mapping[str, str]) -> Optional[float]:
        total: Optional[float] = None
        for name, weight in self.weights.items():
            haystack = fields.get(name, "")
            if not haystack:
                continue
            distance = 1.0 - fuzz.partial_ratio(needle, haystack) / 100.0
            if distance <= self.threshold:
                total = (total or 0.0) + weight * (1.0 - distance)
        return total

    def search(self, query: str, limit: int | None = None) -> list[Project]:
        """Return up to ``limit`` projects for ``query``.

        ``limit`` defaults to :attr:`default_limit`. An empty query returns the
        first ``limit`` projects in list order.
        """
        if limit is None:
            limit = self.default_limit
        if not query or not query.strip():
            with self._lock:
                return [project.model_copy(deep=True) for project in self._projects[:limit]]
        return [hit.project for hit in self.rank(query)[:limit]]

    def get_all(
        self,
        filters: ProjectFilters | None = None,
        sort: SortSpec | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> ProjectPage:
        """Filter, sort, and paginate the project list.

        Args:
            filters: Exact-match filters; None keeps every project.
            sort: Optional single-key sort.
            page: One-based page number.
            page_size: Items per page.

        Returns:
            ProjectPage: The requested page and the filtered total.

        Raises:
            ValueError: If ``page`` or ``page_size`` is not positive.
        """
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")
        with self._lock:
            selected = [
                project for project in self._projects if filters is None or filters.matches(project)
            ]
        if sort is not None:
            selected = sort_projects(selected, sort)
        start = (page - 1) * page_size
        return ProjectPage(
            projects=[project.model_copy(deep=True) for project in selected[start : start + page_size]],
            total=len(selected),
            page=page,
            page_size=page_size,
        )

    def get_stats(self) -> dict[str, Any]:
        """Return counts by type, provider, and language."""
        with self._lock:
            projects = list(self._projects)
        return {
            "total": len(projects),
            "by_type": dict(Counter(project.type for project in projects)),
            "by_provider": dict(Counter(project.provider or "none" for project in projects)),
            "by_language": dict(Counter(project.language or "unknown" for project in projects)),
            "total_size_bytes": sum(project.size_bytes for project in projects),
        }


def _sort_key(value: Any) -> Any:
    if isinstance(value, str):
        return value.casefold()
    if isinstance(value, (list, tuple)):
        return ",".join(str(item).casefold() for item in value)
    return value


def sort_projects(projects: Sequence[Project], sort: SortSpec) -> list[Project]:
    """Sort projects by one attribute.

    Missing values sort after every present value when ascending and before
    them when descending.
    """
    present = [project for project in projects if getattr(project, sort.field, None) is not None]
    missing = [project for project in projects if getattr(project, sort.field, None) is None]
    ordered = sorted(
        present,
        key=lambda project: _sort_key(getattr(project, sort.field)),
        reverse=sort.descending,
    )
    return missing + ordered if sort.descending else ordered + missing


__all__ = [
    "DEFAULT_MIN_MATCH_LENGTH",
    "DEFAULT_SEARCH_LIMIT",
    "DEFAULT_THRESHOLD",
    "FIELD_WEIGHTS",
    "SearchIndexManager",
    "sort_projects",
]
