"""Text normalization utilities for fuzzy matching."""

from __future__ import annotations

import re
from typing import Iterable

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F]")
_WHITESPACE = re.compile(r"\s+")


def normalize_search_text(text: str | None, *, limit: int = 1024) -> str:
    """Return case-folded text suitable for fuzzy comparison.

    Args:
        text: Raw field value; None is treated as empty.
        limit: Maximum number of characters retained when positive.

    Returns:
        str: Text with control characters removed, whitespace collapsed, and
        case folded.
    """

    if not text:
        return ""
    sanitized = _CONTROL_CHARS.sub(" ", text)
    sanitized = _WHITESPACE.sub(" ", sanitized).strip().casefold()
    if limit > 0:
        return sanitized[:limit]
    return sanitized


def join_terms(values: Iterable[str]) -> str:
    """Normalize a list of short terms (such as tags) into one searchable string."""
    return " ".join(term for term in (normalize_search_text(value) for value in values) if term)


__all__ = ["join_terms", "normalize_search_text"]
