"""
Logging configuration — central setup for the CLI entrypoint.

Called once at startup by main.py. Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Console level is resolved in precedence order:
    CLI flag  >  PDKCONVERGE_LOG_LEVEL env var  >  WARNING (default)

Every reconcile run also gets its own log file (see
:func:`attach_run_log`), which always records at DEBUG level — that is
where external tool output ends up.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

# ── Format strings ──────────────────────────────────────────────

# WARNING: message only
_FMT_MINIMAL = "%(message)s"

# INFO: timestamped, with logger name
_FMT_VERBOSE = "%(asctime)s [%(name)s] %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

# DEBUG: level and file:line
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"

# Run log file: always full detail
_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# Logger that carries raw external tool output
TOOL_LOGGER = "pdkconverge.tool"

_NOISY_LOGGERS = ("urllib3",)

_run_handler: logging.Handler | None = None


def setup_logging(
    level: str = "WARNING",
    quiet_third_party: bool = True,
) -> None:
    """Configure Python logging for the entire process.

    Args:
        level: Console log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        quiet_third_party: If True, keep noisy third-party loggers at WARNING
            unless we're at DEBUG level.
    """
    numeric_level = _parse_level(level)

    # ── Console handler (stderr) ────────────────────────────────
    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, _DATEFMT_VERBOSE
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    # Tool output is for the run log only unless we're debugging
    if numeric_level > logging.DEBUG:
        console.addFilter(lambda record: not record.name.startswith(TOOL_LOGGER))

    # ── Root logger ─────────────────────────────────────────────
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root.setLevel(numeric_level)

    # ── Third-party noise control ───────────────────────────────
    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    # Don't propagate exceptions from logging itself
    logging.raiseExceptions = False


def run_log_path(log_dir: Path, now: datetime | None = None) -> Path:
    """Timestamped log file path for one invocation."""
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    path = log_dir / f"run-{stamp}.log"
    counter = 1
    while path.exists():
        path = log_dir / f"run-{stamp}-{counter}.log"
        counter += 1
    return path


def attach_run_log(path: Path) -> Path:
    """Open the per-run log file (append mode) on the root logger.

    The file stays open for the process lifetime and records every
    component at DEBUG. Calling again replaces the previous run log.
    """
    global _run_handler

    path.parent.mkdir(parents=True, exist_ok=True)
    root = logging.getLogger()

    if _run_handler is not None:
        root.removeHandler(_run_handler)
        _run_handler.close()

    fh = logging.FileHandler(path, mode="a", encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
    root.addHandler(fh)
    root.setLevel(logging.DEBUG)
    _run_handler = fh
    return path


def detach_run_log() -> None:
    """Close the per-run log file, if one is open."""
    global _run_handler
    if _run_handler is None:
        return
    logging.getLogger().removeHandler(_run_handler)
    _run_handler.close()
    _run_handler = None


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
