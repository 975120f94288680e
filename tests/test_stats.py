from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest

from wallet_ledger.budgets import create_budget
from wallet_ledger.categories import create_category
from wallet_ledger.errors import InvalidArgument
from wallet_ledger.journal import create_transaction
from wallet_ledger.loans import create_loan
from wallet_ledger.stats import (
    budget_spending,
    month_bounds,
    stats_for_period,
    sub_ledger_summary,
    total_assets,
)
from wallet_ledger.subledgers import create_sub_ledger
from wallet_ledger.wallets import archive_wallet, create_wallet, delete_wallet

START = dt.date(2024, 2, 1)
END = dt.date(2024, 2, 29)


@pytest.fixture
def setup(session, owner):
    cash = create_wallet(session, owner, name="Cash", type="cash")
    usd = create_wallet(
        session,
        owner,
        name="USD",
        type="bank_card",
        currency="USD",
        exchange_rate_to_default=Decimal("4.5"),
    )
    food = create_category(session, owner, name="Food", category_type="expense")
    rent = create_category(session, owner, name="Rent", category_type="expense")
    return cash, usd, food, rent


def _post(session, owner, **fields):
    fields.setdefault("date", dt.date(2024, 2, 10))
    return create_transaction(session, owner, fields)


def test_month_bounds_are_inclusive_calendar_days():
    assert month_bounds(2, 2024) == (dt.date(2024, 2, 1), dt.date(2024, 2, 29))
    assert month_bounds(12, 2023) == (dt.date(2023, 12, 1), dt.date(2023, 12, 31))
    with pytest.raises(InvalidArgument):
        month_bounds(13, 2024)


def test_totals_are_normalized_to_the_default_currency(session, owner, setup):
    cash, usd, food, rent = setup
    _post(session, owner, type="income", amount="1000", wallet_id=cash.id)
    _post(session, owner, type="expense", amount="10", wallet_id=usd.id, category_id=food.id)
    _post(session, owner, type="expense", amount="20", wallet_id=cash.id, category_id=food.id)
    _post(session, owner, type="expense", amount="300", wallet_id=cash.id, category_id=rent.id)
    _post(session, owner, type="expense", amount="5", wallet_id=cash.id)
    _post(session, owner, type="transfer", amount="50", wallet_id=cash.id, to_wallet_id=usd.id, to_wallet_amount="11")
    _post(session, owner, type="expense", amount="999", wallet_id=cash.id, date=dt.date(2024, 3, 1))

    stats = stats_for_period(session, owner, START, END)

    assert stats.total_income == Decimal("1000")
    assert stats.total_expense == Decimal("370")
    assert stats.net == Decimal("630")
    assert [(c.name, c.total) for c in stats.category_breakdown] == [
        ("Rent", Decimal("300")),
        ("Food", Decimal("65")),
    ]


def test_loan_and_excluded_sub_ledger_rows_do_not_count(session, owner, setup):
    cash, _usd, food, _rent = setup
    loan = create_loan(
        session, owner, direction="lend", person="Ali", total_amount="500", start_date=START
    )
    hidden = create_sub_ledger(session, owner, name="Side", include_in_main_analytics=False)
    shown = create_sub_ledger(session, owner, name="Trip")

    _post(session, owner, type="income", amount="200", wallet_id=cash.id, loan_id=loan.id)
    _post(session, owner, type="expense", amount="40", wallet_id=cash.id, sub_ledger_id=hidden.id, category_id=food.id)
    _post(session, owner, type="expense", amount="15", wallet_id=cash.id, sub_ledger_id=shown.id, category_id=food.id)

    stats = stats_for_period(session, owner, START, END)
    assert stats.total_income == 0
    assert stats.total_expense == Decimal("15")

    summary = sub_ledger_summary(session, owner, hidden.id)
    assert summary.total_expense == Decimal("40")
    assert summary.transaction_count == 1


def test_detached_rows_count_at_rate_one(session, owner, setup):
    cash, usd, food, _rent = setup
    _post(session, owner, type="expense", amount="10", wallet_id=usd.id, category_id=food.id)
    delete_wallet(session, usd.id, owner)

    stats = stats_for_period(session, owner, START, END)
    assert stats.total_expense == Decimal("10")


def test_budget_spending_uses_normalized_expenses(session, owner, setup):
    cash, usd, food, rent = setup
    create_budget(session, owner, category_id=food.id, amount="100", month=2, year=2024)
    create_budget(session, owner, category_id=rent.id, amount="200", month=2, year=2024)
    _post(session, owner, type="expense", amount="20", wallet_id=usd.id, category_id=food.id)
    _post(session, owner, type="expense", amount="30", wallet_id=cash.id, category_id=food.id, date=END)
    _post(session, owner, type="expense", amount="50", wallet_id=cash.id, category_id=food.id, date=dt.date(2024, 3, 1))

    rows = {b.category_name: b for b in budget_spending(session, owner, 2, 2024)}

    assert rows["Food"].spent == Decimal("120")
    assert rows["Food"].overspent is True
    assert rows["Food"].percent == Decimal("120.00")
    assert rows["Rent"].spent == 0
    assert rows["Rent"].remaining == Decimal("200")
    assert budget_spending(session, owner, 3, 2023) == []


def test_total_assets_skip_archived_and_split_flexible(session, owner, setup):
    cash, usd, _food, _rent = setup
    savings = create_wallet(session, owner, name="Savings", type="investment", is_flexible=False)
    old = create_wallet(session, owner, name="Old", type="cash")
    _post(session, owner, type="income", amount="100", wallet_id=cash.id)
    _post(session, owner, type="income", amount="10", wallet_id=usd.id)
    _post(session, owner, type="income", amount="1000", wallet_id=savings.id)
    _post(session, owner, type="income", amount="7", wallet_id=old.id)
    archive_wallet(session, old.id, owner, "destroy")

    assets = total_assets(session, owner)
    assert assets.total == Decimal("1145")
    assert assets.flexible == Decimal("145")
