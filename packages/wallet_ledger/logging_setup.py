"""Logging for the ledger core.

Service modules log through ``get_logger("wallet_ledger.<module>")`` and never
install handlers. Balance changes that bypass the journal (archive write-offs,
``set_balance`` corrections) are logged at WARNING; routine writes at INFO or
DEBUG.

Only an entrypoint configures output, via ``configure_logging``. Level and
format come from the arguments first, then ``WALLET_LEDGER_LOG_LEVEL`` and
``WALLET_LEDGER_LOG_FORMAT``, then INFO and ``DEFAULT_FORMAT``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

ROOT_LOGGER = "wallet_ledger"
DEFAULT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_handler: logging.Handler | None = None


def _level_from_name(name: str) -> int | None:
    name = name.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = getattr(logging, name, None)
    return numeric if isinstance(numeric, int) else None


def _resolve_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    for candidate in (level, os.getenv("WALLET_LEDGER_LOG_LEVEL")):
        if candidate:
            parsed = _level_from_name(candidate)
            if parsed is not None:
                return parsed
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
    force: bool = False,
) -> logging.Logger:
    """Send ``wallet_ledger`` records to ``stream`` (stderr by default).

    Repeated calls are no-ops unless ``force=True``, which swaps the existing
    handler for a new one. Records do not propagate to the root logger.
    """

    global _handler
    logger = logging.getLogger(ROOT_LOGGER)
    if _handler is not None and not force:
        return logger
    reset_logging()

    resolved = _resolve_level(level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(
        logging.Formatter(fmt or os.getenv("WALLET_LEDGER_LOG_FORMAT") or DEFAULT_FORMAT)
    )
    logger.addHandler(handler)
    logger.setLevel(resolved)
    logger.propagate = False
    _handler = handler
    return logger


def reset_logging() -> None:
    """Drop the handler installed by ``configure_logging`` and any null handlers."""

    global _handler
    logger = logging.getLogger(ROOT_LOGGER)
    for h in list(logger.handlers):
        if h is _handler or isinstance(h, logging.NullHandler):
            logger.removeHandler(h)
    _handler = None
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def get_logger(name: str) -> logging.Logger:
    # Silent until an entrypoint configures output.
    root = logging.getLogger(ROOT_LOGGER)
    if _handler is None and not root.handlers:
        root.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["DEFAULT_FORMAT", "ROOT_LOGGER", "configure_logging", "get_logger", "reset_logging"]
