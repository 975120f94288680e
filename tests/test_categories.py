from __future__ import annotations

import datetime as dt

import pytest
from ledger_db.models.ledger import Budget
from sqlalchemy import select

from wallet_ledger.budgets import create_budget
from wallet_ledger.categories import (
    create_category,
    delete_category,
    get_category_by_name,
    list_categories,
    normalize_name,
    update_category,
    validate_name,
)
from wallet_ledger.errors import Conflict, InvalidArgument
from wallet_ledger.journal import create_transaction
from wallet_ledger.seed import initialize_defaults
from wallet_ledger.wallets import create_wallet


def test_normalize_and_validate_names():
    assert normalize_name("  Eating   out ") == "Eating out"
    assert validate_name("Café & Bar").ok
    assert validate_name("餐饮").ok
    assert not validate_name("").ok
    assert not validate_name("x" * 65).ok
    assert validate_name("Bad<script>").reason is not None


def test_duplicate_names_conflict_case_insensitively(session, owner):
    create_category(session, owner, name="Pets", category_type="expense")
    with pytest.raises(Conflict):
        create_category(session, owner, name="  pets ", category_type="expense")
    # Same name under the other type is a different category.
    create_category(session, owner, name="Pets", category_type="income")
    assert get_category_by_name(session, owner, "PETS", "income") is not None


def test_create_category_rejects_bad_input(session, owner):
    with pytest.raises(InvalidArgument):
        create_category(session, owner, name="Pets", category_type="transfer")
    with pytest.raises(InvalidArgument):
        create_category(session, owner, name="Pets", category_type="expense", color="blue")


def test_default_categories_are_protected(session, owner):
    initialize_defaults(session, owner)
    food = get_category_by_name(session, owner, "Food", "expense")

    with pytest.raises(Conflict):
        update_category(session, food.id, owner, name="Meals")
    with pytest.raises(Conflict):
        delete_category(session, food.id, owner)
    update_category(session, food.id, owner, color="#000000")
    assert food.color == "#000000"


def test_delete_category_uncategorizes_rows_and_drops_budgets(session, owner):
    cash = create_wallet(session, owner, name="Cash", type="cash")
    pets = create_category(session, owner, name="Pets", category_type="expense")
    create_budget(session, owner, category_id=pets.id, amount="50", month=1, year=2024)
    tx = create_transaction(
        session,
        owner,
        {
            "type": "expense",
            "amount": "12",
            "wallet_id": cash.id,
            "category_id": pets.id,
            "date": dt.date(2024, 1, 3),
        },
    )

    delete_category(session, pets.id, owner)

    assert tx.category_id is None
    assert session.execute(select(Budget)).scalars().all() == []
    assert [c.name for c in list_categories(session, owner)] == []
