"""Sub-ledgers: named groupings of transactions (a trip, a renovation).

A sub-ledger with ``include_in_main_analytics`` turned off keeps its rows out
of the main income/expense statistics and budget spending.
"""

from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ledger_db.models.ledger import SubLedger, Transaction

from .currency import positive
from .errors import InvalidArgument, NotFound
from .logging_setup import get_logger

logger = get_logger("wallet_ledger.subledgers")

_UPDATABLE = {
    "name",
    "description",
    "icon",
    "color",
    "budget_amount",
    "include_in_main_analytics",
    "is_archived",
    "start_date",
    "end_date",
}


def _clean_name(name: str | None) -> str:
    n = " ".join((name or "").strip().split())
    if not n:
        raise InvalidArgument("Sub-ledger name cannot be empty")
    return n


def _check_dates(start: dt.date | None, end: dt.date | None) -> None:
    if start is not None and end is not None and end < start:
        raise InvalidArgument("Sub-ledger end date is before its start date")


def list_sub_ledgers(
    session: Session, owner_id: str, *, include_archived: bool = False
) -> list[SubLedger]:
    stmt = select(SubLedger).where(SubLedger.owner_id == owner_id)
    if not include_archived:
        stmt = stmt.where(SubLedger.is_archived.is_(False))
    return list(session.execute(stmt.order_by(SubLedger.created_at.desc(), SubLedger.id.desc())).scalars())


def get_sub_ledger(session: Session, sub_ledger_id: int, owner_id: str) -> SubLedger:
    row = session.execute(
        select(SubLedger).where(SubLedger.id == sub_ledger_id, SubLedger.owner_id == owner_id)
    ).scalar_one_or_none()
    if row is None:
        raise NotFound(f"Sub-ledger {sub_ledger_id} not found")
    return row


def create_sub_ledger(
    session: Session,
    owner_id: str,
    *,
    name: str,
    description: str | None = None,
    icon: str | None = None,
    color: str | None = None,
    budget_amount: Any = None,
    include_in_main_analytics: bool = True,
    start_date: dt.date | None = None,
    end_date: dt.date | None = None,
) -> SubLedger:
    _check_dates(start_date, end_date)
    row = SubLedger(
        owner_id=owner_id,
        name=_clean_name(name),
        description=description or None,
        icon=icon,
        color=color,
        budget_amount=(
            positive(budget_amount, field="budget_amount") if budget_amount is not None else None
        ),
        include_in_main_analytics=bool(include_in_main_analytics),
        is_archived=False,
        start_date=start_date,
        end_date=end_date,
    )
    session.add(row)
    session.flush()
    logger.info("created sub-ledger %s (%s)", row.id, row.name)
    return row


def update_sub_ledger(
    session: Session, sub_ledger_id: int, owner_id: str, **changes: Any
) -> SubLedger:
    unknown = set(changes) - _UPDATABLE
    if unknown:
        raise InvalidArgument(f"Cannot update sub-ledger fields: {', '.join(sorted(unknown))}")
    row = get_sub_ledger(session, sub_ledger_id, owner_id)
    if "name" in changes:
        changes["name"] = _clean_name(changes["name"])
    if changes.get("budget_amount") is not None:
        changes["budget_amount"] = positive(changes["budget_amount"], field="budget_amount")
    _check_dates(
        changes.get("start_date", row.start_date), changes.get("end_date", row.end_date)
    )
    for key, value in changes.items():
        setattr(row, key, value)
    row.updated_at = dt.datetime.now(dt.UTC)
    session.flush()
    return row


def delete_sub_ledger(session: Session, sub_ledger_id: int, owner_id: str) -> None:
    """Delete a sub-ledger; its transactions remain and lose the grouping."""

    row = get_sub_ledger(session, sub_ledger_id, owner_id)
    session.execute(
        update(Transaction)
        .where(Transaction.sub_ledger_id == row.id, Transaction.owner_id == owner_id)
        .values(sub_ledger_id=None)
        .execution_options(synchronize_session="fetch")
    )
    session.delete(row)
    session.flush()
    logger.info("deleted sub-ledger %s", sub_ledger_id)


__all__ = [
    "create_sub_ledger",
    "delete_sub_ledger",
    "get_sub_ledger",
    "list_sub_ledgers",
    "update_sub_ledger",
]
