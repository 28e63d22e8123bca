"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from repodex.config import (
    ConfigError,
    ConfigManager,
    RepodexConfig,
    ScanRootSetting,
    flatten_for_env,
    resolve_with_precedence,
)


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager()


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    path = manager.ensure_exists()

    assert path == tmp_path / ".repodex" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "repodex configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, RepodexConfig)
    assert config.scan.max_depth == 5
    assert "**/node_modules/**" in config.scan.ignored_patterns


def test_resolve_with_precedence_respects_order(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.save({"scan": {"max_depth": 3, "min_size_bytes": 1024}})

    env = {"REPODEX__SCAN__MAX_DEPTH": "4", "REPODEX__SEARCH__THRESHOLD": "0.3"}
    cli = {"scan.max_depth": 2}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.scan.min_size_bytes == 1024
    assert config.search.threshold == pytest.approx(0.3)
    # CLI overrides take precedence over environment
    assert config.scan.max_depth == 2


def test_scan_paths_accept_strings_and_mappings() -> None:
    config = resolve_with_precedence(
        defaults=RepodexConfig(),
        file_overrides={
            "scan": {"paths": ["~/code", {"path": "~/work", "include_as_project": True}]}
        },
    )

    assert config.scan.paths[0] == "~/code"
    assert config.scan.paths[1] == ScanRootSetting(path="~/work", include_as_project=True)


def test_invalid_yaml_raises_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_flatten_for_env_round_trips_defaults() -> None:
    flat = flatten_for_env(RepodexConfig())

    assert flat["REPODEX__SCAN__MAX_DEPTH"] == "5"
    assert flat["REPODEX__STORE__DEBOUNCE_SECONDS"] == "0.5"
    assert flat["REPODEX__STORE__DATA_DIR"] == "~/.repodex"


def test_resolve_with_precedence_invalid_value_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=RepodexConfig(),
            file_overrides={"scan": {"max_depth": "not-an-int"}},
        )


def test_unknown_section_is_rejected() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(defaults=RepodexConfig(), file_overrides={"llm": {"model": "x"}})
