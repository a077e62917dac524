"""Logging setup for the tlsecho process."""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, TextIO

from loguru import logger

if TYPE_CHECKING:
    from loguru import Record

LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)

PACKAGE = "tlsecho"


def normalize_scope(scope: str) -> str:
    """``core.transport`` and ``tlsecho.core.transport`` name the same modules."""
    scope = scope.strip()
    if scope == PACKAGE or scope.startswith(f"{PACKAGE}."):
        return scope
    return f"{PACKAGE}.{scope}"


def level_filter(
    level: str, debug_scopes: Iterable[str] = ()
) -> Callable[[Record], bool]:
    """Pass records at ``level`` and above, plus DEBUG from ``debug_scopes``.

    Raises:
        ValueError: If ``level`` is not a loguru level name
    """
    threshold = logger.level(level.upper()).no
    debug = logger.level("DEBUG").no
    scopes = tuple(normalize_scope(s) for s in debug_scopes if s.strip())

    def _filter(record: Record) -> bool:
        level_no = record["level"].no
        if level_no >= threshold:
            return True
        # startswith(()) is False, so no scopes means no extra DEBUG output
        return level_no >= debug and (record["name"] or "").startswith(scopes)

    return _filter


def configure_logging(
    level: str = "INFO",
    *,
    debug_scopes: Iterable[str] = (),
    colorize: bool = False,
    sink: TextIO | None = None,
) -> int:
    """Replace loguru's default handler with one stderr sink.

    ``debug_scopes`` turns on DEBUG output for matching modules only, e.g.
    ``["core.transport"]`` while the rest stays at ``level``.

    Returns:
        The loguru handler id
    """
    record_filter = level_filter(level, debug_scopes)
    logger.remove()
    return logger.add(
        sink if sink is not None else sys.stderr,
        level="TRACE",
        format=LOG_FORMAT,
        colorize=colorize,
        filter=record_filter,
    )
