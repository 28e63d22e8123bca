"""Forward-only schema migrations for the stored project document.

Migrations operate on the raw decoded JSON mapping before model validation.
Every step is gated on ``meta.version`` and written so that applying
:func:`migrate` to its own output is a no-op.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any, Callable, Mapping, get_args

from .models import (
    CURRENT_SCHEMA_VERSION,
    DEFAULT_IMPORTANCE,
    ProjectProvider,
    ProjectType,
    RemoteProvider,
    ScanStatus,
    utcnow,
)

LOGGER = logging.getLogger(__name__)

_LIST_DEFAULTS = ("tags", "remotes", "readmeFiles", "scanErrors")


def _to_v1(projects: list[dict[str, Any]]) -> None:
    for project in projects:
        if not project.get("scanStatus"):
            project["scanStatus"] = "complete"


def _to_v2(projects: list[dict[str, Any]]) -> None:
    for project in projects:
        legacy_created = project.pop("created_at", None)
        if legacy_created and not project.get("createdAt"):
            project["createdAt"] = legacy_created

        legacy_size = project.pop("disk_usage_bytes", None)
        if legacy_size is not None and not project.get("sizeBytes"):
            project["sizeBytes"] = legacy_size

        legacy_git = project.pop("git", None)
        if isinstance(legacy_git, Mapping) and not project.get("lastCommitHash"):
            project["lastCommitHash"] = legacy_git.get("last_commit")


_LITERAL_DEFAULTS: dict[str, tuple[tuple[str, ...], Any]] = {
    "type": (get_args(ProjectType), "local"),
    "provider": (get_args(ProjectProvider), None),
    "scanStatus": (get_args(ScanStatus), "complete"),
}


def _normalize_records(projects: list[dict[str, Any]]) -> None:
    """Coerce out-of-range values to defaults so one bad field cannot sink a record.

    Runs on every migration regardless of version.
    """
    for project in projects:
        for key in _LIST_DEFAULTS:
            if not isinstance(project.get(key), list):
                project[key] = []

        importance = project.get("importance")
        if not isinstance(importance, int) or isinstance(importance, bool):
            project["importance"] = DEFAULT_IMPORTANCE
        else:
            project["importance"] = min(5, max(0, importance))

        for key, (allowed, default) in _LITERAL_DEFAULTS.items():
            if key not in project or (project[key] is None and default is None):
                continue
            value = project[key]
            if value not in allowed:
                LOGGER.warning(
                    "Project %s has unknown %s %r; using %r",
                    project.get("id"),
                    key,
                    value,
                    default,
                )
                project[key] = default

        remotes: list[dict[str, Any]] = []
        for item in project["remotes"]:
            if not isinstance(item, Mapping):
                continue
            remote = dict(item)
            if remote.get("provider") not in (None, *get_args(RemoteProvider)):
                remote["provider"] = None
            remotes.append(remote)
        project["remotes"] = remotes


_STEPS: list[tuple[int, Callable[[list[dict[str, Any]]], None]]] = [
    (1, _to_v1),
    (2, _to_v2),
]


def migrate(document: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``document`` upgraded to the current schema version.

    Args:
        document: Raw decoded document, possibly from an older release.

    Returns:
        dict[str, Any]: Normalized document with recomputed ``meta``. A version
        newer than the current one is kept as-is; versions never go down.

    Raises:
        TypeError: If ``document`` is not a mapping.
    """
    if not isinstance(document, Mapping):
        raise TypeError(f"Project document must be a mapping, got {type(document).__name__}")

    data = deepcopy(dict(document))
    raw_meta = data.get("meta")
    meta: dict[str, Any] = dict(raw_meta) if isinstance(raw_meta, Mapping) else {}
    raw_projects = data.get("projects")
    projects = [dict(item) for item in raw_projects or [] if isinstance(item, Mapping)]

    try:
        version = int(meta.get("version") or 0)
    except (TypeError, ValueError):
        version = 0

    for target, step in _STEPS:
        if version < target:
            LOGGER.info("Migrating project document from v%s to v%s", version, target)
            step(projects)
            version = target

    _normalize_records(projects)

    meta["version"] = max(version, CURRENT_SCHEMA_VERSION)
    if not meta.get("lastScanAt"):
        meta["lastScanAt"] = utcnow().isoformat()
    meta["projectCount"] = len(projects)

    data["meta"] = meta
    data["projects"] = projects
    return data


__all__ = ["migrate"]
