"""
Logging configuration for the archman CLI.

Handlers hang off the ``archman`` logger, so every module logger
(``logging.getLogger(__name__)`` under the ``archman`` package) writes
through them while libraries and the host application's root logger
are left alone. Records still propagate, which keeps pytest's caplog
working.

Console level precedence:
    --debug  >  --verbose  >  --quiet  >  $ARCHMAN_LOG_LEVEL  >  WARNING

$ARCHMAN_LOG_FILE adds a file handler; $ARCHMAN_LOG_FILE_LEVEL sets
its level (default: the console level).
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

LOGGER_NAME = "archman"

LEVEL_ENV = "ARCHMAN_LOG_LEVEL"
FILE_ENV = "ARCHMAN_LOG_FILE"
FILE_LEVEL_ENV = "ARCHMAN_LOG_FILE_LEVEL"

# Default console output reads like pacman's: "warning: ..."
_FMT_MINIMAL = "%(levelname)s: %(message)s"

# -v: when, and which stage of the pipeline said it
_FMT_VERBOSE = "%(asctime)s [%(name)s] %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

# --debug and the log file: full detail with file:line
_FMT_DEBUG = "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d: %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"


class _LowercaseLevelFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = record.levelname.lower()
        return super().format(record)


def _parse_level(level: str | None) -> int:
    """Convert a level name to its numeric value, WARNING if unrecognized."""
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.strip().upper())
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric


def resolve_level(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    env_level: str | None = None,
) -> str:
    """Pick the console level name from the CLI flags and environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    if env_level:
        return logging.getLevelName(_parse_level(env_level))
    return "WARNING"


def _console_formatter(level: int) -> logging.Formatter:
    if level <= logging.DEBUG:
        return logging.Formatter(_FMT_DEBUG, datefmt=_DATEFMT_DEBUG)
    if level <= logging.INFO:
        return logging.Formatter(_FMT_VERBOSE, datefmt=_DATEFMT_VERBOSE)
    return _LowercaseLevelFormatter(_FMT_MINIMAL)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> logging.Logger:
    """Attach archman's handlers, replacing any from an earlier call.

    Args:
        level: Console level name.
        log_file: Optional log file; its directory is created if needed.
        log_file_level: Level for the file (default: ``level``).

    Returns:
        The ``archman`` logger.
    """
    console_level = _parse_level(level)
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))
    logger.addHandler(console)

    effective = console_level
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_DEBUG, datefmt=_DATEFMT_FILE))
        logger.addHandler(fh)
        effective = min(effective, file_level)

    logger.setLevel(effective)
    return logger


def configure_cli_logging(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
) -> logging.Logger:
    """Set up logging from the global CLI flags and ARCHMAN_LOG_* variables."""
    return setup_logging(
        level=resolve_level(debug, verbose, quiet, os.environ.get(LEVEL_ENV)),
        log_file=os.environ.get(FILE_ENV),
        log_file_level=os.environ.get(FILE_LEVEL_ENV),
    )
