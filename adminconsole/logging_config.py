from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

LOG_LEVEL_ENV = "ADMINCONSOLE_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_RESET = "\x1b[0m"
_COLORS = {
    logging.DEBUG: "\x1b[36m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1;31m",
}


class LevelColorFormatter(logging.Formatter):
    def __init__(self, *, use_color: bool) -> None:
        super().__init__(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        color = _COLORS.get(record.levelno) if self.use_color else None
        if not color:
            return super().format(record)
        levelname = record.levelname
        record.levelname = f"{color}{levelname}{_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def wants_color(stream: TextIO) -> bool:
    if os.getenv("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def resolve_level(level: str | int | None = None, *, verbose: bool = False) -> int:
    if verbose:
        return logging.DEBUG
    if isinstance(level, int):
        return level
    name = (level or os.getenv(LOG_LEVEL_ENV) or "INFO").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    *,
    level: str | int | None = None,
    verbose: bool = False,
    force: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Install a single stderr handler on the root logger.

    Existing handlers are kept (with their level adjusted) unless `force`
    is set, so test harnesses that capture logging keep working.
    """
    root = logging.getLogger()
    resolved = resolve_level(level, verbose=verbose)
    root.setLevel(resolved)

    if root.handlers and not force:
        for handler in root.handlers:
            handler.setLevel(resolved)
        return

    target = stream or sys.stderr
    handler = logging.StreamHandler(target)
    handler.setLevel(resolved)
    handler.setFormatter(LevelColorFormatter(use_color=wants_color(target)))
    root.handlers.clear()
    root.addHandler(handler)
