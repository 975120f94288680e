"""Category domain helpers and service operations.

Categories are per owner and per type (``expense``/``income``); names are
unique within ``(owner, type)`` case-insensitively at the service level and
exactly at the database level (``uq_categories_owner_type_name``).

Exports
-------
- ``normalize_name(...)`` and ``validate_name(...)``: name helpers shared by
  the CLI and the seeder.
- ``create_category(...)``: validated creation; raises ``Conflict`` for an
  existing name of the same type.
- ``update_category`` / ``delete_category``: default categories are
  protected from renames and deletion.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_db.models.ledger import Budget, Category, RecurringTransaction, Transaction

from .errors import Conflict, InvalidArgument, NotFound
from .logging_setup import get_logger

logger = get_logger("wallet_ledger.categories")

CATEGORY_TYPES = ("expense", "income")

# ---------------------------
# Name normalization/validation
# ---------------------------

# Letters/digits in any script, spaces, and a few separators.
_ALLOWED_RE = re.compile(r"^[\w &\-/'.()]+$")
_HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name``."""

    return " ".join(name.strip().split())


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, min_len: int = 1, max_len: int = 64) -> NameValidation:
    """Lightweight validation for category names.

    Rules
    -----
    - Trim whitespace; enforce length bounds 1..64.
    - Allowed characters: letters, numbers, spaces, and ``& - / ' . ( )``.
    """

    n = normalize_name(name)
    if len(n) < min_len:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if not _ALLOWED_RE.match(n):
        return NameValidation(False, "Only letters, numbers, spaces, and & - / ' . ( ) are allowed")
    return NameValidation(True, None)


def _checked_name(name: str) -> str:
    n = normalize_name(name or "")
    v = validate_name(n)
    if not v.ok:
        raise InvalidArgument(f"Invalid category name: {v.reason}")
    return n


def _checked_type(category_type: str) -> str:
    if category_type not in CATEGORY_TYPES:
        raise InvalidArgument(f"Invalid category type: {category_type!r}")
    return category_type


def _checked_color(color: str | None) -> str | None:
    if color is not None and not _HEX_COLOR_RE.match(color):
        raise InvalidArgument(f"Invalid color (expected #RRGGBB): {color!r}")
    return color


# ---------------------------
# Reads
# ---------------------------


def list_categories(
    session: Session, owner_id: str, *, category_type: str | None = None
) -> list[Category]:
    stmt = select(Category).where(Category.owner_id == owner_id)
    if category_type is not None:
        stmt = stmt.where(Category.type == _checked_type(category_type))
    stmt = stmt.order_by(Category.type, Category.is_default.desc(), Category.name)
    return list(session.execute(stmt).scalars().all())


def get_category(session: Session, category_id: int, owner_id: str) -> Category:
    row = session.execute(
        select(Category).where(Category.id == category_id, Category.owner_id == owner_id)
    ).scalar_one_or_none()
    if row is None:
        raise NotFound(f"Category {category_id} not found")
    return row


def get_category_by_name(
    session: Session, owner_id: str, name: str, category_type: str
) -> Category | None:
    """Case-insensitive lookup within ``(owner, type)``."""

    return (
        session.execute(
            select(Category).where(
                Category.owner_id == owner_id,
                Category.type == category_type,
                func.lower(Category.name) == normalize_name(name).lower(),
            )
        )
        .scalars()
        .first()
    )


# ---------------------------
# Mutations
# ---------------------------


def create_category(
    session: Session,
    owner_id: str,
    *,
    name: str,
    category_type: str,
    icon: str | None = None,
    color: str | None = None,
) -> Category:
    """Create a user category.

    Parameters
    ----------
    session:
        SQLAlchemy session (callers own the transaction scope). On a unique
        violation raised by a concurrent insert the session is rolled back
        before ``Conflict`` is raised.
    name:
        Display name; normalized and validated first.
    category_type:
        ``"expense"`` or ``"income"``.
    """

    n = _checked_name(name)
    t = _checked_type(category_type)
    c = _checked_color(color)
    if get_category_by_name(session, owner_id, n, t) is not None:
        raise Conflict(f"Category '{n}' already exists for {t}")

    row = Category(owner_id=owner_id, name=n, type=t, icon=icon, color=c, is_default=False)
    try:
        session.add(row)
        session.flush()
    except IntegrityError:
        session.rollback()
        raise Conflict(f"Category '{n}' already exists for {t}") from None
    logger.info("created %s category %s (%s)", t, row.id, n)
    return row


def update_category(
    session: Session,
    category_id: int,
    owner_id: str,
    *,
    name: str | None = None,
    icon: str | None = None,
    color: str | None = None,
) -> Category:
    row = get_category(session, category_id, owner_id)
    if name is not None:
        n = _checked_name(name)
        if n != row.name:
            if row.is_default:
                raise Conflict("Default categories cannot be renamed")
            other = get_category_by_name(session, owner_id, n, row.type)
            if other is not None and other.id != row.id:
                raise Conflict(f"Category '{n}' already exists for {row.type}")
            row.name = n
    if icon is not None:
        row.icon = icon
    if color is not None:
        row.color = _checked_color(color)
    session.flush()
    return row


def delete_category(session: Session, category_id: int, owner_id: str) -> None:
    """Delete a user category.

    Its transactions and recurring templates become uncategorized and its
    budgets are removed.
    """

    row = get_category(session, category_id, owner_id)
    if row.is_default:
        raise Conflict("Default categories cannot be deleted")
    for model in (Transaction, RecurringTransaction):
        session.execute(
            update(model)
            .where(model.category_id == row.id)
            .values(category_id=None)
            .execution_options(synchronize_session="fetch")
        )
    session.execute(delete(Budget).where(Budget.category_id == row.id))
    session.delete(row)
    session.flush()
    logger.info("deleted category %s", category_id)


__all__ = [
    "CATEGORY_TYPES",
    "NameValidation",
    "create_category",
    "delete_category",
    "get_category",
    "get_category_by_name",
    "list_categories",
    "normalize_name",
    "update_category",
    "validate_name",
]
