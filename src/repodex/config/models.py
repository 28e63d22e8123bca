"""Configuration models describing repodex settings."""

from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_IGNORED_PATTERNS = [
    "**/node_modules/**",
    "**/.git/**",
    "**/dist/**",
    "**/build/**",
    "**/.next/**",
    "**/target/**",
    "**/.venv/**",
    "**/__pycache__/**",
]


class RepodexBaseModel(BaseModel):
    """Shared configuration for repodex Pydantic settings models."""

    model_config = ConfigDict(extra="forbid")


class ScanRootSetting(RepodexBaseModel):
    """A configured scan root with its project-inclusion flag.

    Attributes:
        path: Directory to scan.
        include_as_project: Whether the root itself should always be recorded.
    """

    path: str
    include_as_project: bool = False


class ScanSettings(RepodexBaseModel):
    """Settings governing project discovery.

    Attributes:
        paths: Default roots scanned when no paths are given on the command line.
        ignored_patterns: Glob patterns excluded from discovery and sampling.
        max_depth: Maximum directory depth searched for repositories.
        min_size_bytes: Sampled size below which candidates are discarded.
        git_timeout_seconds: Timeout applied to each git invocation.
    """

    paths: List[Union[str, ScanRootSetting]] = Field(default_factory=list)
    ignored_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_IGNORED_PATTERNS))
    max_depth: int = 5
    min_size_bytes: int = 0
    git_timeout_seconds: float = 10.0


class StoreSettings(RepodexBaseModel):
    """Persistence settings for the project store.

    Attributes:
        data_dir: Directory holding ``projects.json`` and its siblings.
        debounce_seconds: Quiet period before coalesced writes are flushed.
    """

    data_dir: str = "~/.repodex"
    debounce_seconds: float = 0.5


class SearchSettings(RepodexBaseModel):
    """Fuzzy search tuning.

    Attributes:
        threshold: Maximum per-field distance considered a match.
        min_match_length: Shortest query that produces fuzzy matches.
        default_limit: Result count used when callers omit a limit.
    """

    threshold: float = 0.4
    min_match_length: int = 2
    default_limit: int = 50


class LoggingSettings(RepodexBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    max_size_mb: int = 100
    backup_count: int = 5


class CLIOptions(RepodexBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        summary_default: Whether commands only print summary lines by default.
        page_size: Default number of projects listed per page.
    """

    quiet_default: bool = False
    summary_default: bool = False
    page_size: int = 50


class RepodexConfig(RepodexBaseModel):
    """Top-level configuration struct for repodex.

    Attributes:
        scan: Discovery settings.
        store: Persistence settings.
        search: Fuzzy search settings.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    scan: ScanSettings = Field(default_factory=ScanSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "DEFAULT_IGNORED_PATTERNS",
    "RepodexBaseModel",
    "ScanRootSetting",
    "ScanSettings",
    "StoreSettings",
    "SearchSettings",
    "LoggingSettings",
    "CLIOptions",
    "RepodexConfig",
]
