from __future__ import annotations

import datetime as dt
from decimal import Decimal
from types import SimpleNamespace

import pytest

from wallet_ledger.errors import InvalidArgument
from wallet_ledger.recurring import (
    create_recurring,
    list_recurring,
    next_occurrence,
    run_due,
    update_recurring,
)
from wallet_ledger.wallets import balance_drift, create_wallet, delete_wallet, get_wallet


def _template(frequency, day_of_month=None, day_of_week=None):
    return SimpleNamespace(frequency=frequency, day_of_month=day_of_month, day_of_week=day_of_week)


def test_monthly_schedule_clamps_to_month_end_and_recovers():
    t = _template("monthly", day_of_month=31)
    assert next_occurrence(t, dt.date(2024, 1, 31)) == dt.date(2024, 2, 29)
    assert next_occurrence(t, dt.date(2024, 2, 29)) == dt.date(2024, 3, 31)
    assert next_occurrence(t, dt.date(2024, 3, 31)) == dt.date(2024, 4, 30)
    assert next_occurrence(t, dt.date(2024, 12, 31)) == dt.date(2025, 1, 31)


def test_other_frequencies():
    assert next_occurrence(_template("daily"), dt.date(2024, 2, 28)) == dt.date(2024, 2, 29)
    assert next_occurrence(_template("weekly"), dt.date(2024, 12, 28)) == dt.date(2025, 1, 4)
    yearly = _template("yearly", day_of_month=29)
    assert next_occurrence(yearly, dt.date(2024, 2, 29)) == dt.date(2025, 2, 28)


def test_weekly_schedule_aligns_to_day_of_week():
    friday = _template("weekly", day_of_week=5)
    assert next_occurrence(friday, dt.date(2024, 5, 8)) == dt.date(2024, 5, 10)
    assert next_occurrence(friday, dt.date(2024, 5, 10)) == dt.date(2024, 5, 17)
    sunday = _template("weekly", day_of_week=0)
    assert next_occurrence(sunday, dt.date(2024, 5, 11)) == dt.date(2024, 5, 12)


def test_run_due_catches_up_missed_occurrences(session, owner):
    cash = create_wallet(session, owner, name="Cash", type="cash")
    rent = create_recurring(
        session,
        owner,
        type="expense",
        amount="800",
        wallet_id=cash.id,
        frequency="monthly",
        day_of_month=31,
        next_execution_date=dt.date(2024, 1, 31),
        description="Rent",
    )

    posted = run_due(session, owner, dt.date(2024, 4, 15))

    assert [t.date for t in posted] == [
        dt.date(2024, 1, 31),
        dt.date(2024, 2, 29),
        dt.date(2024, 3, 31),
    ]
    assert rent.next_execution_date == dt.date(2024, 4, 30)
    assert get_wallet(session, cash.id, owner).balance == Decimal("-2400")
    assert balance_drift(session, cash.id, owner) == 0
    assert run_due(session, owner, dt.date(2024, 4, 15)) == []


def test_inactive_templates_are_skipped(session, owner):
    cash = create_wallet(session, owner, name="Cash", type="cash")
    salary = create_recurring(
        session,
        owner,
        type="income",
        amount="3000",
        wallet_id=cash.id,
        frequency="monthly",
        next_execution_date=dt.date(2024, 1, 25),
    )
    update_recurring(session, salary.id, owner, is_active=False)

    assert run_due(session, owner, dt.date(2024, 3, 1)) == []
    assert list_recurring(session, owner, active_only=True) == []


def test_create_recurring_validation(session, owner):
    cash = create_wallet(session, owner, name="Cash", type="cash")
    common = {"amount": "1", "wallet_id": cash.id, "next_execution_date": dt.date(2024, 1, 1)}
    with pytest.raises(InvalidArgument):
        create_recurring(session, owner, type="transfer", frequency="daily", **common)
    with pytest.raises(InvalidArgument):
        create_recurring(session, owner, type="expense", frequency="hourly", **common)
    with pytest.raises(InvalidArgument):
        create_recurring(session, owner, type="expense", frequency="monthly", day_of_month=32, **common)
    with pytest.raises(InvalidArgument):
        create_recurring(session, owner, type="expense", frequency="daily", amount="0",
                         wallet_id=cash.id, next_execution_date=dt.date(2024, 1, 1))


def test_deleting_the_wallet_removes_its_templates(session, owner):
    cash = create_wallet(session, owner, name="Cash", type="cash")
    bank = create_wallet(session, owner, name="Bank", type="bank_card")
    create_recurring(
        session,
        owner,
        type="expense",
        amount="9.99",
        wallet_id=bank.id,
        frequency="monthly",
        next_execution_date=dt.date(2024, 1, 5),
    )

    delete_wallet(session, bank.id, owner)

    assert list_recurring(session, owner) == []
    assert get_wallet(session, cash.id, owner).balance == 0
