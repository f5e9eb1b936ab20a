"""
Logging configuration — one console handler for the whole process.

Entrypoints call ``setup_logging(resolve_level(...))`` once.  Modules
only ever do ``logger = logging.getLogger(__name__)``.

Level precedence:
    CLI flag  >  WINGETCTL_LOG_LEVEL  >  WARNING

Records go to stderr only; stdout carries tool output and ``--json``
documents, and nothing is written to disk.
"""

from __future__ import annotations

import logging
import os
import sys

LOG_LEVEL_ENV_VAR = "WINGETCTL_LOG_LEVEL"
DEFAULT_LEVEL = "WARNING"

# (max numeric level, format, datefmt), checked in order.
# Reader and waiter threads are named after the run, so DEBUG shows them.
_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s.%(msecs)03d %(levelname)-5s [%(threadName)s] %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s %(levelname)-5s %(name)s — %(message)s", "%H:%M:%S"),
)
_FALLBACK_FORMAT = "%(levelname)s: %(message)s"

# Quiet below DEBUG; werkzeug logs every SSE poll at INFO
_NOISY_LOGGERS = ("werkzeug", "urllib3")


def resolve_level(flag_level: str | None = None) -> str:
    """Pick the effective level name: explicit flag, env var, default."""
    if flag_level:
        return flag_level
    return os.environ.get(LOG_LEVEL_ENV_VAR) or DEFAULT_LEVEL


def setup_logging(
    level: str = DEFAULT_LEVEL,
    quiet_third_party: bool = True,
) -> None:
    """Install the stderr handler on the root logger.

    Safe to call more than once: previous root handlers are replaced,
    not stacked.
    """
    numeric_level = _parse_level(level)
    fmt, datefmt = _format_for(numeric_level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    # A closed stderr (e.g. under a test runner) must not raise from emit()
    logging.raiseExceptions = False


def _format_for(numeric_level: int) -> tuple[str, str | None]:
    for ceiling, fmt, datefmt in _FORMATS:
        if numeric_level <= ceiling:
            return fmt, datefmt
    return _FALLBACK_FORMAT, None


def _parse_level(level: str | None) -> int:
    """Level name to its numeric value; unknown names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.strip().upper())
    return numeric if isinstance(numeric, int) else logging.WARNING
