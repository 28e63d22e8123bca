"""Fuzzy search, filtering, and sorting for the project catalog."""

from .index import (
    DEFAULT_MIN_MATCH_LENGTH,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_THRESHOLD,
    FIELD_WEIGHTS,
    SearchIndexManager,
    sort_projects,
)
from .models import DEFAULT_PAGE_SIZE, ProjectFilters, ProjectPage, SearchHit, SortSpec
from .text import join_terms, normalize_search_text

__all__ = [
    "DEFAULT_MIN_MATCH_LENGTH",
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_SEARCH_LIMIT",
    "DEFAULT_THRESHOLD",
    "FIELD_WEIGHTS",
    "ProjectFilters",
    "ProjectPage",
    "SearchHit",
    "SearchIndexManager",
    "SortSpec",
    "join_terms",
    "normalize_search_text",
    "sort_projects",
]
