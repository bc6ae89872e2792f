"""
Logging configuration for the mitl CLI.

``configure_cli_logging`` is called once by the root click group.  Every
module logs through ``logging.getLogger(__name__)`` and inherits this
config; nothing in ``mitl.core`` prints.

Console level, highest precedence first:
    --debug  >  --verbose  >  --quiet  >  MITL_LOG_LEVEL  >  WARNING

A second, usually more detailed, sink can be added with MITL_LOG_FILE
(level MITL_LOG_FILE_LEVEL, default: the console level).
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping

_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    logging.WARNING: ("%(message)s", None),
}

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Per-command subprocess traces; only wanted with --debug
_CHATTY_LOGGERS = ("mitl.adapters.shell.command", "asyncio")


def resolve_level(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    env: Mapping[str, str] | None = None,
) -> str:
    """Pick the console level name from CLI flags and MITL_LOG_LEVEL."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if env is None else env
    return env.get("MITL_LOG_LEVEL") or "WARNING"


def configure_cli_logging(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    env: Mapping[str, str] | None = None,
) -> None:
    """Resolve flags + MITL_LOG_* variables and install the handlers."""
    env = os.environ if env is None else env
    setup_logging(
        level=resolve_level(debug, verbose, quiet, env),
        log_file=env.get("MITL_LOG_FILE") or None,
        log_file_level=env.get("MITL_LOG_FILE_LEVEL") or None,
        quiet_chatty=not debug,
    )


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_chatty: bool = True,
) -> None:
    """Replace the root logger's handlers with mitl's console (+ file) sink.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional log file path.
        log_file_level: Level for the file sink; defaults to ``level``.
        quiet_chatty: Hold subprocess trace loggers at INFO unless the
            console is at DEBUG.
    """
    console_level = _parse_level(level)
    fmt, datefmt = _console_format(console_level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root_level = min(root_level, file_level)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(fh)

    root.setLevel(root_level)

    for name in _CHATTY_LOGGERS:
        chatty = logging.getLogger(name)
        chatty.setLevel(logging.INFO if quiet_chatty and console_level > logging.DEBUG else logging.NOTSET)

    # A broken stderr must never take the CLI down
    logging.raiseExceptions = False


def _console_format(level: int) -> tuple[str, str | None]:
    if level <= logging.DEBUG:
        return _FORMATS[logging.DEBUG]
    if level <= logging.INFO:
        return _FORMATS[logging.INFO]
    return _FORMATS[logging.WARNING]


def _parse_level(level: str | None) -> int:
    """Level name → numeric constant (WARNING when unknown)."""
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
