from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest

from wallet_ledger.budgets import (
    contribute,
    create_budget,
    create_savings_goal,
    list_budgets,
    progress,
    update_budget,
    update_savings_goal,
)
from wallet_ledger.categories import create_category
from wallet_ledger.errors import Conflict, InvalidArgument
from wallet_ledger.journal import create_transaction, list_transactions
from wallet_ledger.models import TransactionFilters
from wallet_ledger.subledgers import (
    create_sub_ledger,
    delete_sub_ledger,
    list_sub_ledgers,
    update_sub_ledger,
)
from wallet_ledger.wallets import create_wallet


def test_one_budget_per_category_and_month(session, owner):
    food = create_category(session, owner, name="Food", category_type="expense")
    salary = create_category(session, owner, name="Salary", category_type="income")

    budget = create_budget(session, owner, category_id=food.id, amount="300", month=4, year=2024)
    with pytest.raises(Conflict):
        create_budget(session, owner, category_id=food.id, amount="100", month=4, year=2024)
    with pytest.raises(InvalidArgument):
        create_budget(session, owner, category_id=salary.id, amount="100", month=4, year=2024)
    with pytest.raises(InvalidArgument):
        create_budget(session, owner, category_id=food.id, amount="100", month=13, year=2024)

    create_budget(session, owner, category_id=food.id, amount="100", month=5, year=2024)
    update_budget(session, budget.id, owner, amount="350")
    assert [b.amount for b in list_budgets(session, owner, month=4, year=2024)] == [Decimal("350")]


def test_savings_goal_progress_and_completion(session, owner):
    goal = create_savings_goal(session, owner, name="Laptop", target_amount="2000")
    assert progress(goal) == Decimal("0.00")
    assert goal.is_completed is False

    contribute(session, goal.id, owner, "500")
    assert progress(goal) == Decimal("25.00")

    contribute(session, goal.id, owner, "1600")
    assert goal.is_completed is True
    assert progress(goal) == Decimal("100.00")

    with pytest.raises(InvalidArgument):
        contribute(session, goal.id, owner, "-5000")
    update_savings_goal(session, goal.id, owner, target_amount="5000")
    assert goal.is_completed is False


def test_sub_ledgers_hide_archived_and_unlink_on_delete(session, owner):
    cash = create_wallet(session, owner, name="Cash", type="cash")
    trip = create_sub_ledger(session, owner, name="Bali trip", budget_amount="1500")
    reno = create_sub_ledger(session, owner, name="Renovation")
    tx = create_transaction(
        session,
        owner,
        {
            "type": "expense",
            "amount": "80",
            "wallet_id": cash.id,
            "sub_ledger_id": trip.id,
            "date": dt.date(2024, 7, 1),
        },
    )

    update_sub_ledger(session, reno.id, owner, is_archived=True)
    assert [s.id for s in list_sub_ledgers(session, owner)] == [trip.id]
    assert len(list_sub_ledgers(session, owner, include_archived=True)) == 2

    with pytest.raises(InvalidArgument):
        update_sub_ledger(
            session, trip.id, owner, start_date=dt.date(2024, 7, 10), end_date=dt.date(2024, 7, 1)
        )

    delete_sub_ledger(session, trip.id, owner)
    assert tx.sub_ledger_id is None
    assert list_transactions(session, owner, TransactionFilters(sub_ledger_id=trip.id)) == []
