"""Logging configuration for the converter."""

import logging
import sys
from pathlib import Path

from qti_convert.config import Settings

PACKAGE_LOGGER = "qti_convert"

QUIET_LEVEL = logging.WARNING


def resolve_level(name: str) -> int:
    """Turn a level name from the settings file into a logging level.

    Raises:
        ValueError: If the name is not a standard logging level.
    """
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {name}")
    return level


def setup_logging(settings: Settings, verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging based on settings.

    Unresolved item references and skipped resource renames are logged as
    warnings, so ``quiet`` still shows them while hiding per-entry progress.

    Args:
        settings: Application settings containing logging config.
        verbose: If True, override level to DEBUG.
        quiet: If True, only log warnings and errors. Ignored when verbose.

    Raises:
        ValueError: If the configured level is not a logging level.
    """
    log_settings = settings.logging

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = QUIET_LEVEL
    else:
        level = resolve_level(log_settings.level)

    formatter = logging.Formatter(log_settings.format)

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()

    # Console output goes to stderr so stdout stays free for command output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_settings.file:
        log_path = Path(log_settings.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # Item titles and identifiers are not limited to ASCII
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the package logger.

    Args:
        name: Module name (typically __name__).

    Returns:
        Logger instance for the module.
    """
    if name.startswith(f"{PACKAGE_LOGGER}.") or name == PACKAGE_LOGGER:
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
