# ruff: noqa: I001
"""Loan reconciliation and loan records.

A loan's ``paid_amount`` and ``status`` are a pure function of its linked
transactions and are recomputed from scratch by :func:`recalculate` after any
relevant journal mutation, never patched incrementally.

Counted transactions per direction
----------------------------------
- ``lend`` (I lent money): ``income`` rows are repayments received.
- ``borrow`` (I borrowed money): ``expense`` rows are repayments made.

Currency convention
-------------------
A linked row stores ``amount`` in its wallet currency. When that differs from
the loan currency the journal requires the input to have been entered in the
loan currency with ``exchange_rate`` meaning ``1 loan currency = rate wallet
currency``. Hence ``amount / exchange_rate`` is the repayment in loan
currency.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ledger_db.models.ledger import Loan, Transaction

from .currency import CENT, ZERO, positive, quantize_money, to_decimal, validate_currency
from .errors import InvalidArgument, NotFound
from .logging_setup import get_logger

logger = get_logger("wallet_ledger.loans")

LOAN_DIRECTIONS = ("lend", "borrow")
LOAN_STATUSES = ("active", "settled", "bad_debt")

_COUNTED_TYPE = {"lend": "income", "borrow": "expense"}


def counted_type(direction: str) -> str:
    """Transaction type that counts as repayment for a loan ``direction``."""

    return _COUNTED_TYPE[direction]


def normalized_amount(tx: Transaction, loan_currency: str) -> Decimal:
    amount = to_decimal(tx.amount)
    if tx.currency != loan_currency:
        rate = to_decimal(tx.exchange_rate if tx.exchange_rate is not None else 1)
        if rate > ZERO:
            amount = amount / rate
    return amount


def recalculate(session: Session, loan_id: int, owner_id: str) -> Loan | None:
    """Recompute ``paid_amount``/``status`` of a loan from its linked transactions.

    Returns the loan, or ``None`` (no-op) when it does not exist for the
    owner. Running it twice with no journal change in between yields the same
    pair.
    """

    loan = find_loan(session, loan_id, owner_id)
    if loan is None:
        return None

    rows = (
        session.execute(
            select(Transaction).where(
                Transaction.loan_id == loan.id, Transaction.owner_id == owner_id
            )
        )
        .scalars()
        .all()
    )
    wanted = _COUNTED_TYPE.get(loan.direction)
    total_paid = ZERO
    for tx in rows:
        if tx.type != wanted:
            continue
        total_paid += normalized_amount(tx, loan.currency)

    total = to_decimal(loan.total_amount)
    previous = loan.status
    if total_paid >= total - CENT:
        status = "settled"
    elif previous == "settled":
        status = "active"
    else:
        status = previous

    paid = quantize_money(total_paid)
    if paid == to_decimal(loan.paid_amount) and status == previous:
        return loan

    loan.paid_amount = paid
    loan.status = status
    loan.updated_at = dt.datetime.now(dt.UTC)
    session.flush()
    if status != previous:
        logger.info(
            "loan %s status %s -> %s (paid %s of %s)", loan.id, previous, status, paid, total
        )
    return loan


def loan_remaining(loan: Loan) -> Decimal:
    """Outstanding amount in loan currency, never negative."""

    remaining = to_decimal(loan.total_amount) - to_decimal(loan.paid_amount)
    return remaining if remaining > ZERO else ZERO


# ---------------------------
# Records
# ---------------------------


def find_loan(session: Session, loan_id: int, owner_id: str) -> Loan | None:
    return session.execute(
        select(Loan).where(Loan.id == loan_id, Loan.owner_id == owner_id)
    ).scalar_one_or_none()


def get_loan(session: Session, loan_id: int, owner_id: str) -> Loan:
    loan = find_loan(session, loan_id, owner_id)
    if loan is None:
        raise NotFound(f"Loan {loan_id} not found")
    return loan


def list_loans(session: Session, owner_id: str, *, status: str | None = None) -> list[Loan]:
    stmt = select(Loan).where(Loan.owner_id == owner_id)
    if status is not None:
        stmt = stmt.where(Loan.status == status)
    stmt = stmt.order_by(Loan.start_date.desc(), Loan.id.desc())
    return list(session.execute(stmt).scalars().all())


def _clean_person(person: str | None) -> str:
    p = " ".join((person or "").strip().split())
    if not p:
        raise InvalidArgument("Loan counterparty cannot be empty")
    return p


def create_loan(
    session: Session,
    owner_id: str,
    *,
    direction: str,
    person: str,
    total_amount: Any,
    start_date: dt.date,
    currency: str = "MYR",
    due_date: dt.date | None = None,
    description: str | None = None,
) -> Loan:
    if direction not in LOAN_DIRECTIONS:
        raise InvalidArgument(f"Invalid loan direction: {direction!r}")
    if due_date is not None and due_date < start_date:
        raise InvalidArgument("Due date cannot be before the start date")
    loan = Loan(
        owner_id=owner_id,
        direction=direction,
        person=_clean_person(person),
        total_amount=positive(total_amount, field="total_amount"),
        currency=validate_currency(currency),
        paid_amount=ZERO,
        status="active",
        start_date=start_date,
        due_date=due_date,
        description=description or None,
    )
    session.add(loan)
    session.flush()
    logger.info("created %s loan %s with %s", direction, loan.id, loan.person)
    return loan


_LOAN_UPDATABLE = {
    "person",
    "total_amount",
    "currency",
    "start_date",
    "due_date",
    "description",
    "status",
}


def update_loan(session: Session, loan_id: int, owner_id: str, **changes: Any) -> Loan:
    """Edit a loan and reconcile it afterwards.

    ``status`` may be set explicitly (for example to ``bad_debt``); the
    reconciliation that follows still settles a fully covered loan.
    Changing ``currency`` is refused once transactions are linked.
    """

    unknown = set(changes) - _LOAN_UPDATABLE
    if unknown:
        raise InvalidArgument(f"Cannot update loan fields: {', '.join(sorted(unknown))}")
    loan = get_loan(session, loan_id, owner_id)

    values: dict[str, Any] = {}
    if "person" in changes:
        values["person"] = _clean_person(changes["person"])
    if "total_amount" in changes:
        values["total_amount"] = positive(changes["total_amount"], field="total_amount")
    if "currency" in changes:
        new_currency = validate_currency(changes["currency"])
        if new_currency != loan.currency:
            linked = session.execute(
                select(func.count(Transaction.id)).where(Transaction.loan_id == loan.id)
            ).scalar_one()
            if linked:
                raise InvalidArgument("Cannot change the currency of a loan with linked transactions")
        values["currency"] = new_currency
    if "start_date" in changes:
        if changes["start_date"] is None:
            raise InvalidArgument("start_date cannot be empty")
        values["start_date"] = changes["start_date"]
    if "due_date" in changes:
        values["due_date"] = changes["due_date"]
    if "description" in changes:
        values["description"] = changes["description"] or None
    if "status" in changes:
        if changes["status"] not in LOAN_STATUSES:
            raise InvalidArgument(f"Invalid loan status: {changes['status']!r}")
        values["status"] = changes["status"]

    start = values.get("start_date", loan.start_date)
    due = values.get("due_date", loan.due_date)
    if due is not None and due < start:
        raise InvalidArgument("Due date cannot be before the start date")

    for key, value in values.items():
        setattr(loan, key, value)
    session.flush()
    recalculate(session, loan.id, owner_id)
    return loan


def delete_loan(session: Session, loan_id: int, owner_id: str) -> None:
    """Delete a loan; linked transactions stay and are only unlinked."""

    loan = get_loan(session, loan_id, owner_id)
    session.execute(
        update(Transaction)
        .where(Transaction.loan_id == loan.id, Transaction.owner_id == owner_id)
        .values(loan_id=None)
        .execution_options(synchronize_session="fetch")
    )
    session.delete(loan)
    session.flush()
    logger.info("deleted loan %s (transactions unlinked)", loan_id)


__all__ = [
    "LOAN_DIRECTIONS",
    "LOAN_STATUSES",
    "counted_type",
    "create_loan",
    "delete_loan",
    "find_loan",
    "get_loan",
    "list_loans",
    "loan_remaining",
    "normalized_amount",
    "recalculate",
    "update_loan",
]
