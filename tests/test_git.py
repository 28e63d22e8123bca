"""Tests for git metadata helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from repodex.scanning import GitInspector, VcsInfo, parse_remote_url
from repodex.scanning.git import is_git_repo


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        (
            "git@github.com:octo/widgets.git",
            {"provider": "github", "owner": "octo", "repo": "widgets"},
        ),
        (
            "https://gitlab.com/team/service.git",
            {"provider": "gitlab", "owner": "team", "repo": "service"},
        ),
        (
            "https://user@bitbucket.org/acme/tools",
            {"provider": "bitbucket", "owner": "acme", "repo": "tools"},
        ),
        (
            "ssh://git@git.example.com:2222/infra/deploy.git",
            {"provider": None, "owner": "infra", "repo": "deploy"},
        ),
    ],
)
def test_parse_remote_url_extracts_provider_details(url: str, expected: dict) -> None:
    assert parse_remote_url(url) == expected


def test_parse_remote_url_ignores_unknown_shapes() -> None:
    assert parse_remote_url("/srv/git/local-mirror") == {}


def test_is_git_repo_accepts_directory_or_file(tmp_path: Path) -> None:
    (tmp_path / "dir-repo" / ".git").mkdir(parents=True)
    (tmp_path / "worktree").mkdir()
    (tmp_path / "worktree" / ".git").write_text("gitdir: ../elsewhere", encoding="utf-8")
    (tmp_path / "plain").mkdir()

    assert is_git_repo(tmp_path / "dir-repo")
    assert is_git_repo(tmp_path / "worktree")
    assert not is_git_repo(tmp_path / "plain")


def test_inspector_returns_empty_info_for_unversioned_directory(tmp_path: Path) -> None:
    assert GitInspector().get_info(tmp_path) == VcsInfo()


def test_inspector_degrades_when_git_is_unavailable(tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()

    info = GitInspector(executable=str(tmp_path / "no-such-git")).get_info(tmp_path, timeout=1)

    assert info.is_versioned is True
    assert info.branch is None
    assert info.last_commit_hash is None
    assert info.remotes == []
