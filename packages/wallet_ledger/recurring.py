# ruff: noqa: I001
"""Recurring income/expense templates and their execution.

``run_due`` posts every occurrence whose date has arrived through the regular
journal (so balances and history stay consistent) and advances the template's
``next_execution_date``. Monthly and yearly schedules clamp to the last day of
shorter months: a template on the 31st runs on 30 April and 28/29 February,
then returns to the 31st.
"""

from __future__ import annotations

import calendar
import datetime as dt
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_db.models.ledger import Category, RecurringTransaction, Transaction

from . import journal
from .currency import positive
from .errors import InvalidArgument, NotFound
from .logging_setup import get_logger
from .wallets import find_wallet

logger = get_logger("wallet_ledger.recurring")

FREQUENCIES = ("daily", "weekly", "monthly", "yearly")
_TYPES = ("expense", "income")


def _clamped(year: int, month: int, day: int) -> dt.date:
    return dt.date(year, month, min(day, calendar.monthrange(year, month)[1]))


def next_occurrence(template: RecurringTransaction, current: dt.date) -> dt.date:
    """Date of the occurrence following ``current`` for ``template``'s schedule.

    Weekly templates with a ``day_of_week`` (0=Sunday .. 6=Saturday) land on
    the next such weekday strictly after ``current``; without one they repeat
    every seven days.
    """

    freq = template.frequency
    if freq == "daily":
        return current + dt.timedelta(days=1)
    if freq == "weekly":
        if template.day_of_week is None:
            return current + dt.timedelta(days=7)
        # day_of_week counts from Sunday=0; date.weekday() from Monday=0.
        target = (template.day_of_week + 6) % 7
        return current + dt.timedelta(days=(target - current.weekday()) % 7 or 7)
    if freq == "monthly":
        day = template.day_of_month or current.day
        year, month = (current.year + 1, 1) if current.month == 12 else (current.year, current.month + 1)
        return _clamped(year, month, day)
    if freq == "yearly":
        day = template.day_of_month or current.day
        return _clamped(current.year + 1, current.month, day)
    raise InvalidArgument(f"Unknown frequency: {freq!r}")


# ---------------------------
# Templates
# ---------------------------


def _validate(
    session: Session,
    owner_id: str,
    *,
    type: str,
    wallet_id: int,
    frequency: str,
    category_id: int | None,
    day_of_month: int | None,
    day_of_week: int | None,
) -> None:
    if type not in _TYPES:
        raise InvalidArgument(f"Recurring transactions must be expense or income, got {type!r}")
    if frequency not in FREQUENCIES:
        raise InvalidArgument(f"Invalid frequency: {frequency!r}")
    if find_wallet(session, wallet_id, owner_id) is None:
        raise InvalidArgument("Invalid wallet")
    if category_id is not None:
        found = session.execute(
            select(Category.id).where(Category.id == category_id, Category.owner_id == owner_id)
        ).scalar_one_or_none()
        if found is None:
            raise InvalidArgument("Invalid category")
    if day_of_month is not None and not 1 <= day_of_month <= 31:
        raise InvalidArgument("day_of_month must be within 1..31")
    if day_of_week is not None and not 0 <= day_of_week <= 6:
        raise InvalidArgument("day_of_week must be within 0..6 (Sunday=0)")


def list_recurring(
    session: Session, owner_id: str, *, active_only: bool = False
) -> list[RecurringTransaction]:
    stmt = select(RecurringTransaction).where(RecurringTransaction.owner_id == owner_id)
    if active_only:
        stmt = stmt.where(RecurringTransaction.is_active.is_(True))
    stmt = stmt.order_by(RecurringTransaction.next_execution_date, RecurringTransaction.id)
    return list(session.execute(stmt).scalars())


def get_recurring(session: Session, recurring_id: int, owner_id: str) -> RecurringTransaction:
    row = session.execute(
        select(RecurringTransaction).where(
            RecurringTransaction.id == recurring_id, RecurringTransaction.owner_id == owner_id
        )
    ).scalar_one_or_none()
    if row is None:
        raise NotFound(f"Recurring transaction {recurring_id} not found")
    return row


def create_recurring(
    session: Session,
    owner_id: str,
    *,
    type: str,
    amount: Any,
    wallet_id: int,
    frequency: str,
    next_execution_date: dt.date,
    category_id: int | None = None,
    description: str | None = None,
    day_of_month: int | None = None,
    day_of_week: int | None = None,
) -> RecurringTransaction:
    _validate(
        session,
        owner_id,
        type=type,
        wallet_id=wallet_id,
        frequency=frequency,
        category_id=category_id,
        day_of_month=day_of_month,
        day_of_week=day_of_week,
    )
    row = RecurringTransaction(
        owner_id=owner_id,
        type=type,
        amount=positive(amount),
        wallet_id=wallet_id,
        category_id=category_id,
        description=description or None,
        frequency=frequency,
        day_of_month=day_of_month,
        day_of_week=day_of_week,
        next_execution_date=next_execution_date,
        is_active=True,
    )
    session.add(row)
    session.flush()
    return row


_UPDATABLE = {
    "amount",
    "category_id",
    "description",
    "frequency",
    "day_of_month",
    "day_of_week",
    "next_execution_date",
    "is_active",
}


def update_recurring(
    session: Session, recurring_id: int, owner_id: str, **changes: Any
) -> RecurringTransaction:
    unknown = set(changes) - _UPDATABLE
    if unknown:
        raise InvalidArgument(f"Cannot update recurring fields: {', '.join(sorted(unknown))}")
    row = get_recurring(session, recurring_id, owner_id)
    merged = {
        "type": row.type,
        "wallet_id": row.wallet_id,
        "frequency": changes.get("frequency", row.frequency),
        "category_id": changes.get("category_id", row.category_id),
        "day_of_month": changes.get("day_of_month", row.day_of_month),
        "day_of_week": changes.get("day_of_week", row.day_of_week),
    }
    _validate(session, owner_id, **merged)
    if "amount" in changes:
        changes["amount"] = positive(changes["amount"])
    if "next_execution_date" in changes and changes["next_execution_date"] is None:
        raise InvalidArgument("next_execution_date cannot be empty")
    for key, value in changes.items():
        setattr(row, key, value)
    session.flush()
    return row


def delete_recurring(session: Session, recurring_id: int, owner_id: str) -> None:
    row = get_recurring(session, recurring_id, owner_id)
    session.delete(row)
    session.flush()


# ---------------------------
# Execution
# ---------------------------


def run_due(session: Session, owner_id: str, as_of: dt.date) -> list[Transaction]:
    """Post every due occurrence up to and including ``as_of``.

    Returns the posted transactions in posting order. Missed occurrences are
    caught up one by one, each with its own scheduled date.
    """

    due = session.execute(
        select(RecurringTransaction)
        .where(
            RecurringTransaction.owner_id == owner_id,
            RecurringTransaction.is_active.is_(True),
            RecurringTransaction.next_execution_date <= as_of,
        )
        .order_by(RecurringTransaction.next_execution_date, RecurringTransaction.id)
    ).scalars().all()

    posted: list[Transaction] = []
    for template in due:
        when = template.next_execution_date
        while when <= as_of:
            tx = journal.create_transaction(
                session,
                owner_id,
                {
                    "type": template.type,
                    "amount": template.amount,
                    "wallet_id": template.wallet_id,
                    "category_id": template.category_id,
                    "description": template.description,
                    "date": when,
                },
            )
            posted.append(tx)
            when = next_occurrence(template, when)
        template.next_execution_date = when
        session.flush()
        logger.info("recurring %s posted through %s; next on %s", template.id, as_of, when)
    return posted


__all__ = [
    "FREQUENCIES",
    "create_recurring",
    "delete_recurring",
    "get_recurring",
    "list_recurring",
    "next_occurrence",
    "run_due",
    "update_recurring",
]
