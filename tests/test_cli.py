"""CLI command tests."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from click.testing import CliRunner

from repodex.cli import cli


def _env(tmp_path: Path) -> dict[str, Any]:
    """Return environment variables pointing HOME to a temp directory."""

    env = {key: value for key, value in os.environ.items() if not key.startswith("REPODEX__")}
    env["HOME"] = str(tmp_path / "home")
    return env


def _workspace(tmp_path: Path) -> Path:
    """Create (or reuse) a workspace holding two git projects."""

    root = tmp_path / "workspace"
    for name, marker in (("alpha", "pyproject.toml"), ("beta", "Cargo.toml")):
        project = root / name
        (project / ".git").mkdir(parents=True, exist_ok=True)
        (project / "README.md").write_text(f"# {name}\n", encoding="utf-8")
        (project / marker).write_text("", encoding="utf-8")
    return root


def _scan(runner: CliRunner, tmp_path: Path) -> dict[str, Any]:
    """Run `repodex scan --json` over the sample workspace and return its payload."""

    result = runner.invoke(cli, ["scan", str(_workspace(tmp_path)), "--json"], env=_env(tmp_path))
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


def _list(runner: CliRunner, tmp_path: Path, *args: str) -> dict[str, Any]:
    """Run `repodex list --json` with extra arguments and return its payload."""

    result = runner.invoke(cli, ["list", "--json", *args], env=_env(tmp_path))
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


def test_cli_help_displays_commands() -> None:
    """`repodex --help` should list the catalog commands."""

    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "Repodex discovers" in result.output
    for command in ("scan", "list", "show", "update", "export", "preview-import", "refresh"):
        assert command in result.output


def test_scan_then_list_reports_projects(tmp_path: Path) -> None:
    """A scan should persist both projects with their detected languages."""

    runner = CliRunner()

    report = _scan(runner, tmp_path)

    assert report["status"] == "complete"
    assert report["stats"]["git_repos"] == 2
    payload = _list(runner, tmp_path)
    assert payload["total"] == 2
    languages = {project["name"]: project["language"] for project in payload["projects"]}
    assert languages == {"alpha": "python", "beta": "rust"}
    assert (tmp_path / "home" / ".repodex" / "projects.json").exists()


def test_scan_summary_mode_prints_summary_line(tmp_path: Path) -> None:
    """`repodex scan --summary` should print the summary line."""

    runner = CliRunner()

    result = runner.invoke(
        cli, ["scan", str(_workspace(tmp_path)), "--summary"], env=_env(tmp_path)
    )

    assert result.exit_code == 0
    assert "Scan summary" in result.output
    assert "git=2" in result.output


def test_scan_rejects_json_with_quiet(tmp_path: Path) -> None:
    """Conflicting output flags should produce a JSON `cli_error`."""

    runner = CliRunner()

    result = runner.invoke(
        cli, ["scan", str(_workspace(tmp_path)), "--json", "--quiet"], env=_env(tmp_path)
    )

    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["error"]["code"] == "cli_error"


def test_list_filters_and_sorts(tmp_path: Path) -> None:
    """Sorting and fuzzy queries should order list results as expected."""

    runner = CliRunner()
    _scan(runner, tmp_path)

    by_name = _list(runner, tmp_path, "--sort", "-name")
    searched = _list(runner, tmp_path, "alpha")

    assert [project["name"] for project in by_name["projects"]] == ["beta", "alpha"]
    assert searched["projects"][0]["name"] == "alpha"


def test_list_rejects_unknown_sort_field(tmp_path: Path) -> None:
    """Unknown sort fields should be rejected with an error message."""

    runner = CliRunner()

    result = runner.invoke(cli, ["list", "--sort", "stars"], env=_env(tmp_path))

    assert result.exit_code != 0
    assert "Unknown sort field" in result.output


def test_update_show_and_delete(tmp_path: Path) -> None:
    """Edits should show up in `show` and `list`; delete should remove the project."""

    runner = CliRunner()
    env = _env(tmp_path)
    _scan(runner, tmp_path)
    project_id = _list(runner, tmp_path, "alpha")["projects"][0]["id"]

    updated = runner.invoke(
        cli,
        ["update", project_id, "--add-tag", "work", "--importance", "5", "--json"],
        env=env,
    )
    assert updated.exit_code == 0, updated.output
    assert json.loads(updated.output)["tags"] == ["work"]

    shown = runner.invoke(cli, ["show", project_id, "--json"], env=env)
    shown_payload = json.loads(shown.output)
    assert shown_payload["importance"] == 5
    assert shown_payload["scanStatus"] == "user-modified"

    tagged = _list(runner, tmp_path, "--tag", "work")
    assert [project["id"] for project in tagged["projects"]] == [project_id]

    deleted = runner.invoke(cli, ["delete", project_id, "--yes"], env=env)
    assert deleted.exit_code == 0
    assert _list(runner, tmp_path)["total"] == 1


def test_rescan_keeps_user_metadata(tmp_path: Path) -> None:
    """Rescanning should keep ids and user tags without duplicating projects."""

    runner = CliRunner()
    env = _env(tmp_path)
    _scan(runner, tmp_path)
    before = {project["name"]: project["id"] for project in _list(runner, tmp_path)["projects"]}
    project_id = before["alpha"]
    tagged = runner.invoke(cli, ["update", project_id, "--tags", "keep,me"], env=env)
    assert tagged.exit_code == 0, tagged.output

    _scan(runner, tmp_path)

    payload = _list(runner, tmp_path)
    assert payload["total"] == 2
    assert {project["name"]: project["id"] for project in payload["projects"]} == before
    alpha = next(project for project in payload["projects"] if project["id"] == project_id)
    assert alpha["tags"] == ["keep", "me"]


def test_show_unknown_project_returns_json_error(tmp_path: Path) -> None:
    """`repodex show` on a missing id should report `not_found`."""

    runner = CliRunner()

    result = runner.invoke(cli, ["show", "nope", "--json"], env=_env(tmp_path))

    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["error"]["code"] == "not_found"


def test_export_preview_and_import(tmp_path: Path) -> None:
    """An exported catalog should preview and merge back after a clear."""

    runner = CliRunner()
    env = _env(tmp_path)
    _scan(runner, tmp_path)
    export_path = tmp_path / "backup.json"

    exported = runner.invoke(cli, ["export", str(export_path), "--json"], env=env)
    assert json.loads(exported.output)["exported"] == 2

    cleared = runner.invoke(cli, ["clear", "--yes"], env=env)
    assert cleared.exit_code == 0
    assert _list(runner, tmp_path)["total"] == 0

    preview = runner.invoke(cli, ["preview-import", str(export_path), "--json"], env=env)
    assert json.loads(preview.output)["count"] == 2

    imported = runner.invoke(
        cli, ["import", str(export_path), "--mode", "merge", "--json"], env=env
    )
    assert json.loads(imported.output)["imported"] == 2
    assert _list(runner, tmp_path)["total"] == 2


def test_import_invalid_file_reports_invalid_input(tmp_path: Path) -> None:
    """Unparsable import files should report `invalid_input`."""

    runner = CliRunner()
    bad = tmp_path / "bad.json"
    bad.write_text("not json", encoding="utf-8")

    result = runner.invoke(cli, ["import", str(bad), "--json"], env=_env(tmp_path))

    assert result.exit_code == 1
    assert json.loads(result.output)["error"]["code"] == "invalid_input"


def test_touch_and_refresh(tmp_path: Path) -> None:
    """`touch` should stamp every project and `refresh` should restore file mtimes."""

    runner = CliRunner()
    env = _env(tmp_path)
    _scan(runner, tmp_path)

    touched = runner.invoke(cli, ["touch", "--timestamp", "2024-02-03"], env=env)
    assert touched.exit_code == 0
    assert "Touched 2 projects" in touched.output
    stamps = {project["lastModifiedAt"] for project in _list(runner, tmp_path)["projects"]}
    assert stamps == {"2024-02-03T00:00:00Z"}

    refreshed = runner.invoke(cli, ["refresh"], env=env)
    assert refreshed.exit_code == 0
    assert "Refreshed 2 projects" in refreshed.output
