"""structlog setup shared by the API process and the wizard client.

Development gets the colored console renderer; every other environment emits
JSON lines. When LOG_FILE is set, each rendered line is also appended to that
file so quote sessions can be replayed after the fact.
"""

from __future__ import annotations

import logging
import sys
from typing import IO

import structlog

from hvac_quote.config import settings


class _FileMirror:
    """stdout writer that mirrors every line into an append-only log file.

    A file that cannot be opened or written is dropped with a one-time notice
    on stderr; stdout logging carries on.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._fh: IO[str] | None = None
        try:
            self._fh = open(path, "a", encoding="utf-8")  # noqa: SIM115
        except OSError as exc:
            self._disable(f"cannot open {path!r}: {exc}")

    def _disable(self, reason: str) -> None:
        self._fh = None
        print(f"WARNING: log file disabled ({reason})", file=sys.stderr)

    def write(self, data: str) -> None:
        sys.stdout.write(data)
        if self._fh is None:
            return
        try:
            self._fh.write(data)
            self._fh.flush()
        except (OSError, ValueError) as exc:
            self._disable(f"write to {self._path!r} failed: {exc}")

    def flush(self) -> None:
        sys.stdout.flush()
        if self._fh is None:
            return
        try:
            self._fh.flush()
        except (OSError, ValueError) as exc:
            self._disable(f"flush of {self._path!r} failed: {exc}")


def _level() -> int:
    level = logging.getLevelName(settings.log_level.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging() -> None:
    """Install the structlog pipeline. Safe to call more than once."""
    tail: list[structlog.types.Processor]
    if settings.environment == "development":
        tail = [structlog.dev.ConsoleRenderer()]
    else:
        tail = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    if settings.log_file:
        factory = structlog.PrintLoggerFactory(file=_FileMirror(settings.log_file))  # type: ignore[arg-type]
    else:
        factory = structlog.PrintLoggerFactory()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            *tail,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level()),
        context_class=dict,
        logger_factory=factory,
        cache_logger_on_first_use=True,
    )
