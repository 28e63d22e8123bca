"""Candidate discovery beneath configured scan roots."""

from __future__ import annotations

import logging
from pathlib import Path

from .detectors import LanguageDetector, ReadmeFinder
from .git import VcsInspector
from .globbing import GlobMatcher
from .models import ScanConfig, ScanPath

LOGGER = logging.getLogger(__name__)

GIT_DIR_PATTERN = "**/.git"
# Keeps the walk out of repository internals while still matching ``.git`` itself.
_GIT_INTERNALS = "**/.git/?*"


class CandidateFinder:
    """Find directories under each scan root that may be projects."""

    def __init__(
        self,
        config: ScanConfig,
        *,
        globber: GlobMatcher,
        vcs: VcsInspector,
        readmes: ReadmeFinder,
        languages: LanguageDetector,
    ) -> None:
        self.config = config
        self._globber = globber
        self._vcs = vcs
        self._readmes = readmes
        self._languages = languages

    def find(self) -> list[Path]:
        """Return canonical candidate paths, deduplicated in discovery order."""
        candidates: dict[str, Path] = {}

        def _add(path: Path) -> None:
            candidates.setdefault(str(path), path)

        for entry in self.config.paths:
            root = self._resolve_root(entry)
            if root is None:
                continue
            try:
                repositories = self.find_repositories(root)
            except OSError as exc:
                LOGGER.warning("Failed to scan path %s: %s", root, exc)
                continue

            for repository in repositories:
                _add(repository)

            has_children = bool(repositories)
            if self._vcs.is_versioned(root):
                if entry.include_as_project or not has_children:
                    _add(root)
            elif entry.include_as_project:
                _add(root)
            elif not has_children and self._looks_like_project(root):
                _add(root)

        return list(candidates.values())

    def find_repositories(self, root: Path) -> list[Path]:
        """Return directories below ``root`` (excluding ``root``) holding a ``.git`` entry."""
        ignore = [pattern for pattern in self.config.ignored_patterns if ".git" not in pattern]
        ignore.append(_GIT_INTERNALS)
        found: dict[str, Path] = {}
        for match in self._globber.iter_matches(
            GIT_DIR_PATTERN,
            cwd=root,
            only_files=False,
            deep=self.config.max_depth,
            ignore=ignore,
            absolute=True,
            follow_symlinks=False,
        ):
            parent = Path(str(match)).parent.resolve()
            if parent == root:
                continue
            found.setdefault(str(parent), parent)
        return list(found.values())

    def _resolve_root(self, entry: ScanPath) -> Path | None:
        try:
            root = Path(entry.path).expanduser().resolve(strict=True)
        except (OSError, RuntimeError) as exc:
            LOGGER.warning("Skipping scan path %s: %s", entry.path, exc)
            return None
        if not root.is_dir():
            LOGGER.warning("Skipping scan path %s: not a directory", root)
            return None
        return root

    def _looks_like_project(self, root: Path) -> bool:
        return self._readmes.has_readme(root) or self._languages.detect(root) is not None


__all__ = ["CandidateFinder", "GIT_DIR_PATTERN"]
