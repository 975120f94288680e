# ruff: noqa: I001
"""Aggregation engine: period totals, budget spending and asset totals.

Normalization: each row's wallet-currency ``amount`` is multiplied by its
wallet's ``exchange_rate_to_default`` to land in the owner's default
currency. Rows detached from a deleted wallet use a rate of 1.

Exclusions (income/expense totals, category breakdown, budget spending):

- rows linked to a loan (loan cash flow is a receivable/payable, not income
  or expense);
- rows in a sub-ledger with ``include_in_main_analytics`` turned off.

Sums run over ``Decimal`` values in Python so the result is exact whatever
the database's numeric storage.
"""

from __future__ import annotations

import calendar
import datetime as dt
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import Select, or_, select
from sqlalchemy.orm import Session

from ledger_db.models.ledger import Budget, Category, SubLedger, Transaction, Wallet

from .currency import ONE, ZERO, to_decimal
from .errors import InvalidArgument
from .models import (
    AssetTotals,
    BudgetSpending,
    CategoryTotal,
    SubLedgerSummary,
    TransactionStats,
)
from .subledgers import get_sub_ledger


def month_bounds(month: int, year: int) -> tuple[dt.date, dt.date]:
    """First and last calendar day of ``month``/``year`` (both inclusive)."""

    if not 1 <= month <= 12:
        raise InvalidArgument(f"month must be within 1..12, got {month}")
    last = calendar.monthrange(year, month)[1]
    return dt.date(year, month, 1), dt.date(year, month, last)


def _normalized_rows(owner_id: str) -> Select:
    """Rows eligible for main analytics with their default-currency rate."""

    return (
        select(Transaction, Wallet.exchange_rate_to_default)
        .outerjoin(Wallet, Transaction.wallet_id == Wallet.id)
        .outerjoin(SubLedger, Transaction.sub_ledger_id == SubLedger.id)
        .where(
            Transaction.owner_id == owner_id,
            Transaction.loan_id.is_(None),
            or_(
                Transaction.sub_ledger_id.is_(None),
                SubLedger.include_in_main_analytics.is_(True),
            ),
        )
    )


def _in_default(tx: Transaction, rate: Decimal | None) -> Decimal:
    return to_decimal(tx.amount) * (ONE if rate is None else to_decimal(rate, field="rate"))


def stats_for_period(
    session: Session, owner_id: str, start: dt.date, end: dt.date
) -> TransactionStats:
    """Income/expense totals and the expense breakdown for ``start..end`` inclusive.

    Transfers move money between the owner's own wallets and are not counted.
    Uncategorized expenses count toward ``total_expense`` but are left out of
    the breakdown, which is sorted by total descending.
    """

    if end < start:
        raise InvalidArgument("end date is before start date")
    rows = session.execute(
        _normalized_rows(owner_id).where(Transaction.date >= start, Transaction.date <= end)
    ).all()

    income = ZERO
    expense = ZERO
    by_category: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for tx, rate in rows:
        value = _in_default(tx, rate)
        if tx.type == "income":
            income += value
        elif tx.type == "expense":
            expense += value
            if tx.category_id is not None:
                by_category[tx.category_id] += value

    breakdown: list[CategoryTotal] = []
    if by_category:
        cats = {
            c.id: c
            for c in session.execute(
                select(Category).where(
                    Category.owner_id == owner_id, Category.id.in_(list(by_category))
                )
            ).scalars()
        }
        for category_id, total in by_category.items():
            cat = cats.get(category_id)
            if cat is None:
                continue
            breakdown.append(
                CategoryTotal(category_id=cat.id, name=cat.name, color=cat.color, total=total)
            )
        breakdown.sort(key=lambda c: (-c.total, c.name))

    return TransactionStats(total_income=income, total_expense=expense, category_breakdown=breakdown)


def budget_spending(
    session: Session, owner_id: str, month: int, year: int
) -> list[BudgetSpending]:
    """Each budget of ``month``/``year`` with the normalized expense spent in its category."""

    first, last = month_bounds(month, year)
    budgets = session.execute(
        select(Budget, Category)
        .join(Category, Budget.category_id == Category.id)
        .where(Budget.owner_id == owner_id, Budget.month == month, Budget.year == year)
        .order_by(Category.name, Budget.id)
    ).all()
    if not budgets:
        return []

    category_ids = {b.category_id for b, _ in budgets}
    rows = session.execute(
        _normalized_rows(owner_id).where(
            Transaction.type == "expense",
            Transaction.category_id.in_(category_ids),
            Transaction.date >= first,
            Transaction.date <= last,
        )
    ).all()
    spent: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for tx, rate in rows:
        spent[tx.category_id] += _in_default(tx, rate)

    return [
        BudgetSpending(
            budget_id=budget.id,
            category_id=cat.id,
            category_name=cat.name,
            category_color=cat.color,
            month=budget.month,
            year=budget.year,
            amount=to_decimal(budget.amount),
            spent=spent[cat.id],
        )
        for budget, cat in budgets
    ]


def total_assets(session: Session, owner_id: str) -> AssetTotals:
    """Sum of live (non-archived) wallet balances in the default currency.

    ``flexible`` only counts wallets flagged as spendable funds.
    """

    wallets = session.execute(
        select(Wallet).where(Wallet.owner_id == owner_id, Wallet.is_archived.is_(False))
    ).scalars()
    total = ZERO
    flexible = ZERO
    for w in wallets:
        value = to_decimal(w.balance) * to_decimal(w.exchange_rate_to_default, field="rate")
        total += value
        if w.is_flexible:
            flexible += value
    return AssetTotals(total=total, flexible=flexible)


def sub_ledger_summary(session: Session, owner_id: str, sub_ledger_id: int) -> SubLedgerSummary:
    """Income/expense totals of one sub-ledger in the default currency (loan rows excluded)."""

    ledger = get_sub_ledger(session, sub_ledger_id, owner_id)
    rows = session.execute(
        select(Transaction, Wallet.exchange_rate_to_default)
        .outerjoin(Wallet, Transaction.wallet_id == Wallet.id)
        .where(
            Transaction.owner_id == owner_id,
            Transaction.sub_ledger_id == ledger.id,
            Transaction.loan_id.is_(None),
        )
    ).all()
    income = ZERO
    expense = ZERO
    for tx, rate in rows:
        if tx.type == "income":
            income += _in_default(tx, rate)
        elif tx.type == "expense":
            expense += _in_default(tx, rate)
    return SubLedgerSummary(
        sub_ledger_id=ledger.id,
        total_income=income,
        total_expense=expense,
        transaction_count=len(rows),
    )


__all__ = [
    "budget_spending",
    "month_bounds",
    "stats_for_period",
    "sub_ledger_summary",
    "total_assets",
]
