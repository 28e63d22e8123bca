"""Logging configuration shared by the CLI and long-running services."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from repodex.config.models import LoggingSettings

LOG_FILENAME = "repodex.log"
_HANDLER_MARKER = "_repodex_handler"


def configure_logging(
    settings: LoggingSettings,
    *,
    log_dir: Path | None = None,
    console: Console | None = None,
) -> logging.Logger:
    """Install console and rotating-file handlers on the ``repodex`` logger.

    Calling this repeatedly replaces previously installed handlers rather than
    stacking duplicates.

    Args:
        settings: Logging configuration (level and rotation limits).
        log_dir: Directory for ``repodex.log``; file logging is skipped when None.
        console: Optional Rich console used for stderr output.

    Returns:
        logging.Logger: The configured package logger.
    """
    logger = logging.getLogger("repodex")
    level = logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    logger.setLevel(logging.DEBUG)

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
    )
    console_handler.setLevel(level)
    setattr(console_handler, _HANDLER_MARKER, True)
    logger.addHandler(console_handler)

    if log_dir is not None:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_dir / LOG_FILENAME,
                maxBytes=max(1, settings.max_size_mb) * 1024 * 1024,
                backupCount=max(0, settings.backup_count),
                encoding="utf-8",
            )
        except OSError as exc:
            logger.warning("File logging disabled for %s: %s", log_dir, exc)
        else:
            file_handler.setLevel(min(level, logging.INFO))
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
            )
            setattr(file_handler, _HANDLER_MARKER, True)
            logger.addHandler(file_handler)

    return logger


__all__ = ["LOG_FILENAME", "configure_logging"]
