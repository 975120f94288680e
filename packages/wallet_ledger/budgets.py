"""Monthly category budgets and savings goals.

Spending against a budget is computed by :func:`wallet_ledger.stats.budget_spending`;
this module only manages the rows.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_db.models.ledger import Budget, SavingsGoal

from .categories import get_category
from .currency import ZERO, positive, to_decimal, validate_currency
from .errors import Conflict, InvalidArgument, NotFound
from .logging_setup import get_logger

logger = get_logger("wallet_ledger.budgets")


# ---------------------------
# Budgets
# ---------------------------


def _check_period(month: int, year: int) -> None:
    if not 1 <= int(month) <= 12:
        raise InvalidArgument(f"month must be within 1..12, got {month}")
    if not 1900 <= int(year) <= 9999:
        raise InvalidArgument(f"year out of range: {year}")


def list_budgets(
    session: Session, owner_id: str, *, month: int | None = None, year: int | None = None
) -> list[Budget]:
    stmt = select(Budget).where(Budget.owner_id == owner_id)
    if month is not None:
        stmt = stmt.where(Budget.month == month)
    if year is not None:
        stmt = stmt.where(Budget.year == year)
    return list(session.execute(stmt.order_by(Budget.year, Budget.month, Budget.id)).scalars())


def get_budget(session: Session, budget_id: int, owner_id: str) -> Budget:
    row = session.execute(
        select(Budget).where(Budget.id == budget_id, Budget.owner_id == owner_id)
    ).scalar_one_or_none()
    if row is None:
        raise NotFound(f"Budget {budget_id} not found")
    return row


def create_budget(
    session: Session,
    owner_id: str,
    *,
    category_id: int,
    amount: Any,
    month: int,
    year: int,
) -> Budget:
    """Create a budget for an expense category; one per category and month."""

    _check_period(month, year)
    try:
        category = get_category(session, category_id, owner_id)
    except NotFound:
        raise InvalidArgument("Invalid category") from None
    if category.type != "expense":
        raise InvalidArgument("Budgets can only be set on expense categories")
    existing = session.execute(
        select(Budget.id).where(
            Budget.owner_id == owner_id,
            Budget.category_id == category.id,
            Budget.month == month,
            Budget.year == year,
        )
    ).first()
    if existing is not None:
        raise Conflict(f"A budget for {category.name} in {year}-{month:02d} already exists")

    row = Budget(
        owner_id=owner_id,
        category_id=category.id,
        amount=positive(amount),
        month=int(month),
        year=int(year),
    )
    session.add(row)
    session.flush()
    logger.info("created budget %s for %s %s-%02d", row.id, category.name, year, month)
    return row


def update_budget(session: Session, budget_id: int, owner_id: str, *, amount: Any) -> Budget:
    row = get_budget(session, budget_id, owner_id)
    row.amount = positive(amount)
    session.flush()
    return row


def delete_budget(session: Session, budget_id: int, owner_id: str) -> None:
    row = get_budget(session, budget_id, owner_id)
    session.delete(row)
    session.flush()


# ---------------------------
# Savings goals
# ---------------------------


def progress(goal: SavingsGoal) -> Decimal:
    """Percent of the target reached, capped at 100 and rounded to 2 places."""

    target = to_decimal(goal.target_amount)
    if target <= ZERO:
        return ZERO
    pct = to_decimal(goal.current_amount) / target * 100
    return min(pct, Decimal("100")).quantize(Decimal("0.01"))


def list_savings_goals(session: Session, owner_id: str) -> list[SavingsGoal]:
    return list(
        session.execute(
            select(SavingsGoal)
            .where(SavingsGoal.owner_id == owner_id)
            .order_by(SavingsGoal.is_completed, SavingsGoal.id)
        ).scalars()
    )


def get_savings_goal(session: Session, goal_id: int, owner_id: str) -> SavingsGoal:
    row = session.execute(
        select(SavingsGoal).where(SavingsGoal.id == goal_id, SavingsGoal.owner_id == owner_id)
    ).scalar_one_or_none()
    if row is None:
        raise NotFound(f"Savings goal {goal_id} not found")
    return row


def create_savings_goal(
    session: Session,
    owner_id: str,
    *,
    name: str,
    target_amount: Any,
    currency: str = "MYR",
    current_amount: Any = ZERO,
    target_date: dt.date | None = None,
    icon: str | None = None,
    color: str | None = None,
) -> SavingsGoal:
    clean = " ".join((name or "").strip().split())
    if not clean:
        raise InvalidArgument("Savings goal name cannot be empty")
    current = to_decimal(current_amount, field="current_amount")
    if current < ZERO:
        raise InvalidArgument("current_amount cannot be negative")
    target = positive(target_amount, field="target_amount")
    row = SavingsGoal(
        owner_id=owner_id,
        name=clean,
        target_amount=target,
        current_amount=current,
        currency=validate_currency(currency),
        target_date=target_date,
        icon=icon,
        color=color,
        is_completed=current >= target,
    )
    session.add(row)
    session.flush()
    return row


def update_savings_goal(
    session: Session, goal_id: int, owner_id: str, **changes: Any
) -> SavingsGoal:
    """Edit a goal; ``is_completed`` follows ``current_amount >= target_amount``."""

    allowed = {"name", "target_amount", "current_amount", "target_date", "icon", "color"}
    unknown = set(changes) - allowed
    if unknown:
        raise InvalidArgument(f"Cannot update savings goal fields: {', '.join(sorted(unknown))}")
    row = get_savings_goal(session, goal_id, owner_id)
    if "name" in changes:
        clean = " ".join((changes["name"] or "").strip().split())
        if not clean:
            raise InvalidArgument("Savings goal name cannot be empty")
        changes["name"] = clean
    if "target_amount" in changes:
        changes["target_amount"] = positive(changes["target_amount"], field="target_amount")
    if "current_amount" in changes:
        current = to_decimal(changes["current_amount"], field="current_amount")
        if current < ZERO:
            raise InvalidArgument("current_amount cannot be negative")
        changes["current_amount"] = current
    for key, value in changes.items():
        setattr(row, key, value)
    row.is_completed = to_decimal(row.current_amount) >= to_decimal(row.target_amount)
    session.flush()
    return row


def contribute(session: Session, goal_id: int, owner_id: str, amount: Any) -> SavingsGoal:
    """Add ``amount`` (may be negative for a withdrawal) to a goal's saved amount."""

    row = get_savings_goal(session, goal_id, owner_id)
    new_amount = to_decimal(row.current_amount) + to_decimal(amount)
    if new_amount < ZERO:
        raise InvalidArgument("Withdrawal exceeds the saved amount")
    return update_savings_goal(session, goal_id, owner_id, current_amount=new_amount)


def delete_savings_goal(session: Session, goal_id: int, owner_id: str) -> None:
    row = get_savings_goal(session, goal_id, owner_id)
    session.delete(row)
    session.flush()


__all__ = [
    "contribute",
    "create_budget",
    "create_savings_goal",
    "delete_budget",
    "delete_savings_goal",
    "get_budget",
    "get_savings_goal",
    "list_budgets",
    "list_savings_goals",
    "progress",
    "update_budget",
    "update_savings_goal",
]
