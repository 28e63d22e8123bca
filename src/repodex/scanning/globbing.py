"""Bounded glob enumeration used by project discovery.

Patterns use ``fnmatch`` syntax matched segment by segment against POSIX
paths relative to the search root. ``*``, ``?`` and ``[...]`` stay within one
path segment; only a ``**`` segment spans directories, including zero of
them. ``{a,b}`` alternation is expanded first.
Ignore patterns additionally match a directory when written with a trailing
``/**``, and a pattern without any ``/`` matches any single path component,
so ``node_modules`` prunes every ``node_modules`` directory.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, Iterator, Pattern, Sequence, Union

LOGGER = logging.getLogger(__name__)

_BRACES = re.compile(r"\{([^{}]*)\}")


@dataclass(slots=True)
class GlobEntry:
    """A matched path together with its stat result."""

    path: str
    stats: os.stat_result


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternations into separate patterns.

    Args:
        pattern: Glob pattern possibly containing brace groups.

    Returns:
        list[str]: Patterns with every alternation expanded.
    """
    match = _BRACES.search(pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


def _translate_segment(segment: str) -> str:
    out: list[str] = []
    index = 0
    while index < len(segment):
        char = segment[index]
        index += 1
        if char == "*":
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        elif char == "[":
            # a leading "!" or "]" belongs to the class body
            start = index + 1 if segment[index : index + 1] in ("!", "]") else index
            end = segment.find("]", start)
            if end == -1:
                out.append(re.escape(char))
                continue
            body = segment[index:end].replace("\\", "\\\\")
            if body.startswith("!"):
                body = "^" + body[1:]
            out.append(f"[{body}]")
            index = end + 1
        else:
            out.append(re.escape(char))
    return "".join(out)


def compile_pattern(pattern: str, *, case_sensitive: bool = True) -> Pattern[str]:
    """Compile one brace-free glob into a regex over relative POSIX paths.

    Args:
        pattern: Glob pattern without ``{}`` groups.
        case_sensitive: Whether the compiled regex respects case.

    Returns:
        Pattern[str]: Regex that must match the whole relative path.
    """
    segments = pattern.split("/")
    parts: list[str] = []
    for position, segment in enumerate(segments):
        last = position == len(segments) - 1
        if segment == "**":
            parts.append(".*" if last else "(?:[^/]+/)*")
        else:
            parts.append(_translate_segment(segment) + ("" if last else "/"))
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile("".join(parts) + r"\Z", flags)


class _PatternSet:
    def __init__(self, patterns: Iterable[str], *, case_sensitive: bool, for_ignore: bool) -> None:
        self._case_sensitive = case_sensitive
        self._paths: list[Pattern[str]] = []
        self._components: list[str] = []
        for raw in patterns:
            if not raw or not raw.strip():
                continue
            for pattern in expand_braces(raw.strip().replace("\\", "/").rstrip("/")):
                if for_ignore and "/" not in pattern and "**" not in pattern:
                    self._components.append(self._fold(pattern))
                    continue
                self._add(pattern)
                if for_ignore and pattern.endswith("/**"):
                    self._add(pattern[: -len("/**")])

    def _add(self, pattern: str) -> None:
        self._paths.append(compile_pattern(pattern, case_sensitive=self._case_sensitive))

    def _fold(self, value: str) -> str:
        return value if self._case_sensitive else value.lower()

    def __bool__(self) -> bool:
        return bool(self._paths or self._components)

    def matches(self, relative: str) -> bool:
        if any(regex.match(relative) for regex in self._paths):
            return True
        if self._components:
            parts = self._fold(relative).split("/")
            return any(fnmatchcase(part, pattern) for pattern in self._components for part in parts)
        return False


class GlobMatcher:
    """Enumerate filesystem entries matching a glob pattern under a directory."""

    def iter_matches(
        self,
        pattern: str,
        *,
        cwd: Union[str, Path],
        only_files: bool = True,
        deep: int | None = None,
        ignore: Sequence[str] = (),
        absolute: bool = False,
        follow_symlinks: bool = True,
        case_sensitive: bool = True,
        stats: bool = False,
    ) -> Iterator[Union[str, GlobEntry]]:
        """Lazily yield matches so callers may stop early.

        Args:
            pattern: Glob pattern relative to ``cwd``.
            cwd: Directory to search.
            only_files: When True, directories are never yielded.
            deep: Maximum number of path components of a yielded entry
                relative to ``cwd``; ``None`` means unbounded.
            ignore: Patterns whose matches are skipped (directories are pruned).
            absolute: Yield absolute paths instead of POSIX relative paths.
            follow_symlinks: Whether to descend into symlinked directories.
            case_sensitive: Whether matching respects case.
            stats: Yield :class:`GlobEntry` objects carrying ``os.stat`` results.

        Yields:
            str | GlobEntry: Matching paths in directory-walk order.
        """
        base = Path(cwd).expanduser()
        if not base.is_dir():
            return
        if deep is not None and deep < 1:
            return

        wanted = _PatternSet([pattern], case_sensitive=case_sensitive, for_ignore=False)
        ignored = _PatternSet(ignore, case_sensitive=case_sensitive, for_ignore=True)

        def _on_error(exc: OSError) -> None:
            LOGGER.debug("Skipping unreadable path during glob: %s", exc)

        for dirpath, dirnames, filenames in os.walk(
            base, topdown=True, onerror=_on_error, followlinks=follow_symlinks
        ):
            current = Path(dirpath)
            rel_dir = current.relative_to(base).as_posix()
            prefix = "" if rel_dir == "." else f"{rel_dir}/"
            depth = 0 if rel_dir == "." else rel_dir.count("/") + 1
            child_depth = depth + 1

            if deep is not None and child_depth > deep:
                dirnames[:] = []
                continue

            kept_dirs: list[str] = []
            for name in sorted(dirnames):
                relative = f"{prefix}{name}"
                if ignored and ignored.matches(relative):
                    continue
                kept_dirs.append(name)
                if not only_files and wanted.matches(relative):
                    entry = self._entry(current / name, relative, absolute, stats, follow_symlinks)
                    if entry is not None:
                        yield entry
            dirnames[:] = kept_dirs if deep is None or child_depth < deep else []

            for name in sorted(filenames):
                relative = f"{prefix}{name}"
                if ignored and ignored.matches(relative):
                    continue
                if wanted.matches(relative):
                    entry = self._entry(current / name, relative, absolute, stats, follow_symlinks)
                    if entry is not None:
                        yield entry

    def match(self, pattern: str, **options: object) -> list[Union[str, GlobEntry]]:
        """Return every match of ``pattern``; see :meth:`iter_matches` for options."""
        return list(self.iter_matches(pattern, **options))  # type: ignore[arg-type]

    @staticmethod
    def _entry(
        path: Path,
        relative: str,
        absolute: bool,
        stats: bool,
        follow_symlinks: bool,
    ) -> Union[str, GlobEntry, None]:
        rendered = str(path) if absolute else relative
        if not stats:
            return rendered
        try:
            return GlobEntry(path=rendered, stats=path.stat(follow_symlinks=follow_symlinks))
        except OSError:
            return None


__all__ = ["GlobEntry", "GlobMatcher", "compile_pattern", "expand_braces"]
