from __future__ import annotations

import threading

import pytest
from ledger_db.client import session_scope
from ledger_db.models.ledger import Category, Wallet
from sqlalchemy import func, select

import wallet_ledger.seed as seed
from wallet_ledger.errors import NotFound
from wallet_ledger.seed import (
    DEFAULT_EXPENSE_CATEGORIES,
    DEFAULT_INCOME_CATEGORIES,
    DEFAULT_WALLETS,
    initialize_defaults,
)
from wallet_ledger.users import get_user, update_default_currency, upsert_user
from wallet_ledger.wallets import create_wallet, delete_wallet, list_wallets


def _count(session, model, owner) -> int:
    return session.execute(
        select(func.count(model.id)).where(model.owner_id == owner)
    ).scalar_one()


def test_initialize_defaults_is_idempotent(session, owner):
    first = initialize_defaults(session, owner)
    assert first.wallets_created == len(DEFAULT_WALLETS)
    assert first.categories_created == len(DEFAULT_EXPENSE_CATEGORIES) + len(DEFAULT_INCOME_CATEGORIES)

    second = initialize_defaults(session, owner)
    assert (second.wallets_created, second.categories_created) == (0, 0)
    assert _count(session, Wallet, owner) == len(DEFAULT_WALLETS)
    assert _count(session, Category, owner) == first.categories_created

    defaults = [w.name for w in list_wallets(session, owner) if w.is_default]
    assert defaults == ["Cash"]


def test_initialize_defaults_fills_gaps_and_keeps_existing_default(session, owner):
    mine = create_wallet(session, owner, name="Savings", type="investment", currency="USD")

    result = initialize_defaults(session, owner, "SGD")

    assert result.wallets_created == len(DEFAULT_WALLETS)
    wallets = list_wallets(session, owner)
    assert [w.name for w in wallets if w.is_default] == ["Savings"]
    assert {w.currency for w in wallets if w.id != mine.id} == {"SGD"}


def test_initialize_defaults_requires_a_user(session):
    with pytest.raises(NotFound):
        initialize_defaults(session, "nobody")


def test_upsert_user_seeds_new_users_only_once(session, db_url):
    user = upsert_user(session, "user-9", email="u9@example.com", default_currency="usd")
    assert user.default_currency == "USD"
    assert _count(session, Wallet, "user-9") == len(DEFAULT_WALLETS)

    bank = next(w for w in list_wallets(session, "user-9") if w.name == "Bank Card")
    delete_wallet(session, bank.id, "user-9")
    upsert_user(session, "user-9", email="new@example.com")

    assert _count(session, Wallet, "user-9") == len(DEFAULT_WALLETS) - 1
    assert get_user(session, "user-9").email == "new@example.com"

    update_default_currency(session, "user-9", "EUR")
    assert get_user(session, "user-9").default_currency == "EUR"


def test_concurrent_bootstrap_creates_one_set(db_url, owner, monkeypatch):
    # Both sessions read "no wallets yet" before either inserts.
    barrier = threading.Barrier(2, timeout=10)
    seen = threading.local()
    real_lookup = seed.get_default_wallet

    def lookup_then_wait(session, owner_id):
        found = real_lookup(session, owner_id)
        if not getattr(seen, "first", False):
            seen.first = True
            barrier.wait()
        return found

    monkeypatch.setattr(seed, "get_default_wallet", lookup_then_wait)
    results, errors = [], []

    def bootstrap():
        try:
            with session_scope(database_url=db_url) as s:
                results.append(initialize_defaults(s, owner))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=bootstrap) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert errors == []
    assert sum(r.wallets_created for r in results) == len(DEFAULT_WALLETS)
    assert sum(r.categories_created for r in results) == len(DEFAULT_EXPENSE_CATEGORIES) + len(
        DEFAULT_INCOME_CATEGORIES
    )
    with session_scope(database_url=db_url) as s:
        assert _count(s, Wallet, owner) == len(DEFAULT_WALLETS)
        assert _count(s, Category, owner) == len(DEFAULT_EXPENSE_CATEGORIES) + len(
            DEFAULT_INCOME_CATEGORIES
        )
        assert [w.name for w in list_wallets(s, owner) if w.is_default] == ["Cash"]
