# ruff: noqa: I001
"""Default data for a new owner: starter wallets and categories.

``initialize_defaults`` is safe to call any number of times, including from
concurrent sign-up requests for the same owner:

- wallets and categories are inserted with ``ON CONFLICT DO NOTHING``
  against ``uq_wallets_owner_type_name`` and
  ``uq_categories_owner_type_name``, so a racing bootstrap cannot duplicate
  them;
- the default-wallet flag is assigned only when, after the insert, the owner
  still has no default.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from ledger_db.models.ledger import Category, User, Wallet

from .currency import ZERO, validate_currency
from .errors import NotFound
from .logging_setup import get_logger
from .wallets import get_default_wallet, set_default

logger = get_logger("wallet_ledger.seed")


@dataclass(frozen=True, slots=True)
class DefaultWallet:
    name: str
    type: str
    icon: str
    color: str
    is_default: bool = False


@dataclass(frozen=True, slots=True)
class DefaultCategory:
    name: str
    icon: str
    color: str


DEFAULT_WALLETS: Sequence[DefaultWallet] = (
    DefaultWallet("Cash", "cash", "cash", "#10B981", is_default=True),
    DefaultWallet("Bank Card", "bank_card", "bank_card", "#3B82F6"),
    DefaultWallet("Alipay", "digital_wallet", "digital_wallet", "#1677FF"),
    DefaultWallet("WeChat Pay", "digital_wallet", "digital_wallet", "#07C160"),
)

DEFAULT_EXPENSE_CATEGORIES: Sequence[DefaultCategory] = (
    DefaultCategory("Food", "food", "#EF4444"),
    DefaultCategory("Shopping", "shopping", "#F59E0B"),
    DefaultCategory("Transport", "transport", "#3B82F6"),
    DefaultCategory("Housing", "housing", "#8B5CF6"),
    DefaultCategory("Entertainment", "entertainment", "#EC4899"),
    DefaultCategory("Medical", "health", "#10B981"),
    DefaultCategory("Education", "education", "#06B6D4"),
    DefaultCategory("Gifts", "gift", "#F97316"),
    DefaultCategory("Other", "other", "#6B7280"),
)

DEFAULT_INCOME_CATEGORIES: Sequence[DefaultCategory] = (
    DefaultCategory("Salary", "salary", "#10B981"),
    DefaultCategory("Bonus", "gift", "#22C55E"),
    DefaultCategory("Investment", "work", "#3B82F6"),
    DefaultCategory("Other", "other", "#6B7280"),
)


@dataclass(frozen=True, slots=True)
class SeedResult:
    wallets_created: int
    categories_created: int


def _insert_ignoring_duplicates(
    session: Session, model: type[Wallet | Category], rows: list[dict]
) -> int:
    """Insert rows keyed by ``(owner_id, type, name)``, skipping existing ones.

    Returns the number of rows actually inserted. A concurrent bootstrap that
    got there first makes this insert fewer rows (possibly none), never more.
    """

    if not rows:
        return 0
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(model).values(rows)
    elif dialect == "sqlite":
        stmt = sqlite_insert(model).values(rows)
    else:  # pragma: no cover - only postgres/sqlite are deployed
        for row in rows:
            session.add(model(**row))
        session.flush()
        return len(rows)
    stmt = stmt.on_conflict_do_nothing(index_elements=[model.owner_id, model.type, model.name])
    result = session.execute(stmt)
    return max(result.rowcount or 0, 0)


def _assign_default_wallet(session: Session, owner_id: str) -> None:
    wallets = {
        (w.name, w.type): w
        for w in session.execute(
            select(Wallet).where(Wallet.owner_id == owner_id, Wallet.is_archived.is_(False))
        ).scalars()
    }
    if not wallets:
        return
    preferred = [wallets.get((e.name, e.type)) for e in DEFAULT_WALLETS if e.is_default]
    chosen = next((w for w in preferred if w is not None), None) or min(
        wallets.values(), key=lambda w: w.id
    )
    set_default(session, chosen.id, owner_id)


def initialize_defaults(
    session: Session, owner_id: str, default_currency: str = "MYR"
) -> SeedResult:
    """Insert the owner's missing default wallets and categories.

    Parameters
    ----------
    owner_id:
        Existing user id (``NotFound`` otherwise).
    default_currency:
        Currency given to newly created default wallets.

    Returns
    -------
    SeedResult
        How many wallets and categories this call created (zero on repeats,
        and zero for the loser of a concurrent bootstrap).
    """

    currency = validate_currency(default_currency)
    if session.get(User, owner_id) is None:
        raise NotFound(f"User {owner_id!r} not found")

    existing_wallets = {
        (w.name, w.type)
        for w in session.execute(select(Wallet).where(Wallet.owner_id == owner_id)).scalars()
    }
    has_default = get_default_wallet(session, owner_id) is not None

    wallet_rows = [
        {
            "owner_id": owner_id,
            "name": entry.name,
            "type": entry.type,
            "currency": currency,
            "balance": ZERO,
            "opening_balance": ZERO,
            "icon": entry.icon,
            "color": entry.color,
            "is_default": False,
            "is_flexible": True,
            "is_archived": False,
        }
        for entry in DEFAULT_WALLETS
        if (entry.name, entry.type) not in existing_wallets
    ]
    wallets_created = _insert_ignoring_duplicates(session, Wallet, wallet_rows)

    # Re-read: a concurrent bootstrap may have inserted (and flagged) the rows.
    if not has_default and get_default_wallet(session, owner_id) is None:
        _assign_default_wallet(session, owner_id)

    existing_categories = {
        (c.type, c.name)
        for c in session.execute(select(Category).where(Category.owner_id == owner_id)).scalars()
    }
    rows = [
        {
            "owner_id": owner_id,
            "name": entry.name,
            "type": category_type,
            "icon": entry.icon,
            "color": entry.color,
            "is_default": True,
        }
        for category_type, entries in (
            ("expense", DEFAULT_EXPENSE_CATEGORIES),
            ("income", DEFAULT_INCOME_CATEGORIES),
        )
        for entry in entries
        if (category_type, entry.name) not in existing_categories
    ]
    categories_created = _insert_ignoring_duplicates(session, Category, rows)
    session.flush()

    if wallets_created or categories_created:
        logger.info(
            "seeded %d wallet(s) and %d categor(ies) for %s",
            wallets_created,
            categories_created,
            owner_id,
        )
    return SeedResult(wallets_created=wallets_created, categories_created=categories_created)


__all__ = [
    "DEFAULT_EXPENSE_CATEGORIES",
    "DEFAULT_INCOME_CATEGORIES",
    "DEFAULT_WALLETS",
    "SeedResult",
    "initialize_defaults",
]
