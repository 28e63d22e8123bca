"""CLI tests for configuration commands."""

import os
from pathlib import Path
from typing import Any

from click.testing import CliRunner

from repodex.cli import cli
from repodex.config import ConfigManager


def _env_with_home(tmp_path: Path) -> dict[str, Any]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("REPODEX__")}
    env["HOME"] = str(tmp_path)
    return env


def _config_path(tmp_path: Path) -> Path:
    return tmp_path / ".repodex" / "config.yaml"


def test_config_view_creates_and_displays_config(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "view"], env=env)

    assert result.exit_code == 0
    assert "scan:" in result.output
    assert _config_path(tmp_path).exists()


def test_config_set_updates_value_and_writes_diff(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "set", "scan.max_depth", "--value", "3"], env=env)

    assert result.exit_code == 0
    assert "Updated scan.max_depth" in result.output

    manager = ConfigManager(config_path=_config_path(tmp_path), env={})
    config = manager.load(include_env=False)
    assert config.scan.max_depth == 3


def test_config_set_rejects_invalid_value(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(
        cli, ["config", "set", "scan.max_depth", "--value", "deep"], env=env
    )

    assert result.exit_code != 0
    assert "Invalid configuration values" in result.output

    manager = ConfigManager(config_path=_config_path(tmp_path), env={})
    assert manager.load(include_env=False).scan.max_depth == 5


def test_config_view_reflects_environment_unless_disabled(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    env["REPODEX__SCAN__MAX_DEPTH"] = "9"

    with_env = runner.invoke(cli, ["config", "view"], env=env)
    without_env = runner.invoke(cli, ["config", "view", "--no-env"], env=env)

    assert with_env.exit_code == 0
    assert "max_depth: 9" in with_env.output
    assert "max_depth: 5" in without_env.output
