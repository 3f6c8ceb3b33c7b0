"""
Logging configuration — set up once by the CLI group callback.

Every module does ``logger = logging.getLogger(__name__)``; the console
handler writes to stderr so ``--json`` output on stdout stays clean.

Levels are resolved in precedence order:
    --debug > --verbose > --quiet  >  TOOLBELT_LOG_LEVEL  >  WARNING

A second, more detailed copy can go to TOOLBELT_LOG_FILE at
TOOLBELT_LOG_FILE_LEVEL (default: the console level).
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

LEVEL_ENV = "TOOLBELT_LOG_LEVEL"
FILE_ENV = "TOOLBELT_LOG_FILE"
FILE_LEVEL_ENV = "TOOLBELT_LOG_FILE_LEVEL"

# Console format per verbosity: (format, datefmt)
_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    # --debug: where did it come from
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    # --verbose: step-by-step progress
    logging.INFO: ("%(asctime)s %(message)s", "%H:%M:%S"),
    # default: warnings and errors only, as plain lines
    logging.WARNING: ("%(levelname)s: %(message)s", None),
}

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
) -> str:
    """Pick the console level from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(LEVEL_ENV, "WARNING")


def _console_formatter(level: int) -> logging.Formatter:
    for threshold in (logging.DEBUG, logging.INFO):
        if level <= threshold:
            fmt, datefmt = _CONSOLE_FORMATS[threshold]
            break
    else:
        fmt, datefmt = _CONSOLE_FORMATS[logging.WARNING]
    return logging.Formatter(fmt, datefmt=datefmt)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional log file path (``~`` is expanded, parent
            directories are created).
        log_file_level: Level for the file; defaults to ``level``.
    """
    console_level = _parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(fh)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

    # Route warnings.warn() through the same handlers
    logging.captureWarnings(True)
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
