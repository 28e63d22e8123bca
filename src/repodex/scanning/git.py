"""Git metadata collection via the ``git`` command-line client."""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol, Union

from repodex.state.models import Remote

LOGGER = logging.getLogger(__name__)

DEFAULT_GIT_TIMEOUT_SECONDS = 10.0

_SSH_REMOTE = re.compile(r"^[\w.-]+@([^:]+):([^/]+)/(.+?)(?:\.git)?/?$")
_URL_REMOTE = re.compile(r"^(?:https?|ssh|git)://(?:[^@/]+@)?([^/:]+)(?::\d+)?/([^/]+)/(.+?)(?:\.git)?/?$")
_REMOTE_LINE = re.compile(r"^(\S+)\s+(\S+)\s+\(fetch\)$")


@dataclass(slots=True)
class VcsInfo:
    """Version-control metadata for a directory.

    Attributes:
        is_versioned: Whether the directory holds a ``.git`` entry.
        branch: Current branch name, or None when unavailable.
        last_commit_hash: Hash of ``HEAD``, or None when unavailable.
        remotes: Fetch remotes with parsed provider information.
    """

    is_versioned: bool = False
    branch: Optional[str] = None
    last_commit_hash: Optional[str] = None
    remotes: list[Remote] = field(default_factory=list)


class VcsInspector(Protocol):
    """Interface consumed by the scanner; implementations must never raise."""

    def is_versioned(self, path: Path) -> bool:
        ...

    def get_info(self, path: Path, timeout: float = DEFAULT_GIT_TIMEOUT_SECONDS) -> VcsInfo:
        ...


def is_git_repo(path: Union[str, Path]) -> bool:
    """Return whether ``path`` contains a ``.git`` directory or worktree file."""
    try:
        return (Path(path) / ".git").exists()
    except OSError:
        return False


def _provider_for(host: str) -> Optional[str]:
    lowered = host.lower()
    for provider in ("github", "gitlab", "bitbucket"):
        if provider in lowered:
            return provider
    return None


def parse_remote_url(url: str) -> dict[str, Optional[str]]:
    """Extract provider, owner, and repository name from a remote URL.

    Args:
        url: SSH (``git@host:owner/repo.git``) or URL-style remote.

    Returns:
        dict[str, Optional[str]]: ``provider``/``owner``/``repo`` keys, empty
        when the URL shape is not recognized.
    """
    for pattern in (_SSH_REMOTE, _URL_REMOTE):
        match = pattern.match(url.strip())
        if match:
            host, owner, repo = match.groups()
            return {"provider": _provider_for(host), "owner": owner, "repo": repo}
    return {}


class GitInspector:
    """Collect branch, commit, and remote details by shelling out to git."""

    def __init__(self, executable: str = "git") -> None:
        self._executable = executable

    def is_versioned(self, path: Path) -> bool:
        return is_git_repo(path)

    def get_info(self, path: Path, timeout: float = DEFAULT_GIT_TIMEOUT_SECONDS) -> VcsInfo:
        """Return git metadata for ``path``; failures yield an empty result."""
        if not self.is_versioned(path):
            return VcsInfo()
        try:
            return VcsInfo(
                is_versioned=True,
                branch=self._run(path, ["rev-parse", "--abbrev-ref", "HEAD"], timeout),
                last_commit_hash=self._run(path, ["rev-parse", "HEAD"], timeout),
                remotes=self._remotes(path, timeout),
            )
        except Exception as exc:  # pragma: no cover - collaborator must not raise
            LOGGER.warning("Failed to read git info for %s: %s", path, exc)
            return VcsInfo()

    def _run(self, path: Path, args: list[str], timeout: float) -> Optional[str]:
        try:
            completed = subprocess.run(
                [self._executable, "-C", str(path), *args],
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            LOGGER.debug("git %s failed in %s: %s", " ".join(args), path, exc)
            return None
        if completed.returncode != 0:
            return None
        return completed.stdout.strip() or None

    def _remotes(self, path: Path, timeout: float) -> list[Remote]:
        output = self._run(path, ["remote", "-v"], timeout)
        if not output:
            return []
        urls: dict[str, str] = {}
        for line in output.splitlines():
            match = _REMOTE_LINE.match(line.strip())
            if match:
                name, url = match.groups()
                urls.setdefault(name, url)
        return [Remote(name=name, url=url, **parse_remote_url(url)) for name, url in urls.items()]


__all__ = [
    "DEFAULT_GIT_TIMEOUT_SECONDS",
    "GitInspector",
    "VcsInfo",
    "VcsInspector",
    "is_git_repo",
    "parse_remote_url",
]
