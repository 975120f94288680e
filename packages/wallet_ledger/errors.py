"""Typed failures raised by the ledger core.

``NotFound`` deliberately covers both "missing" and "owned by someone else" so
callers cannot probe for other owners' rows. ``Unavailable`` is the only
retryable member; it wraps storage connectivity failures detected by
:func:`storage_guard`.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from pydantic import ValidationError
from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from ledger_db.client import session_scope

from .logging_setup import get_logger

logger = get_logger("wallet_ledger.errors")


class LedgerError(Exception):
    """Base class for every failure the ledger core raises on purpose."""

    retryable: bool = False


class NotFound(LedgerError):
    pass


class InvalidArgument(LedgerError):
    pass


class Conflict(LedgerError):
    pass


class Unavailable(LedgerError):
    retryable = True


def invalid_from_validation(exc: ValidationError) -> InvalidArgument:
    """Collapse a pydantic ``ValidationError`` into one readable ``InvalidArgument``."""

    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "input"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return InvalidArgument("; ".join(parts) or "invalid input")


def _is_connectivity_error(exc: BaseException) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError, DisconnectionError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


@contextmanager
def storage_guard() -> Iterator[None]:
    """Translate storage connectivity failures into :class:`Unavailable`.

    Everything else (including ``LedgerError`` subclasses and integrity
    violations) propagates unchanged.
    """

    try:
        yield
    except LedgerError:
        raise
    except Exception as exc:
        if _is_connectivity_error(exc):
            logger.warning("storage unavailable: %s", exc)
            raise Unavailable("storage is temporarily unavailable; retry the operation") from exc
        raise


@contextmanager
def ledger_session(*, database_url: str | None = None) -> Iterator[Session]:
    """``session_scope`` wrapped in :func:`storage_guard`.

    One ``with ledger_session() as s:`` block is one atomic logical operation:
    all writes commit together or none do.
    """

    with storage_guard(), session_scope(database_url=database_url) as session:
        yield session


__all__ = [
    "Conflict",
    "InvalidArgument",
    "LedgerError",
    "NotFound",
    "Unavailable",
    "invalid_from_validation",
    "ledger_session",
    "storage_guard",
]
