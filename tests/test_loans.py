from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest

from wallet_ledger.errors import InvalidArgument, NotFound
from wallet_ledger.journal import (
    create_transaction,
    delete_transaction,
    get_transaction,
    list_transactions_for_loan,
    update_transaction,
)
from wallet_ledger.loans import (
    create_loan,
    delete_loan,
    get_loan,
    list_loans,
    loan_remaining,
    recalculate,
    update_loan,
)
from wallet_ledger.wallets import create_wallet, get_wallet

DAY = dt.date(2024, 6, 1)


@pytest.fixture
def cash(session, owner):
    return create_wallet(session, owner, name="Cash", type="cash")


def _lend(session, owner, total="100", currency="MYR"):
    return create_loan(
        session,
        owner,
        direction="lend",
        person="Ali",
        total_amount=total,
        currency=currency,
        start_date=DAY,
    )


def _repay(session, owner, wallet_id, loan_id, amount, **extra):
    return create_transaction(
        session,
        owner,
        {
            "type": "income",
            "amount": amount,
            "wallet_id": wallet_id,
            "loan_id": loan_id,
            "date": DAY,
            **extra,
        },
    )


def test_recalculate_is_idempotent(session, owner, cash):
    loan = _lend(session, owner)
    _repay(session, owner, cash.id, loan.id, "40")

    first = recalculate(session, loan.id, owner)
    pair = (first.paid_amount, first.status)
    second = recalculate(session, loan.id, owner)
    assert (second.paid_amount, second.status) == pair == (Decimal("40.00"), "active")
    assert loan_remaining(second) == Decimal("60")


def test_recalculate_missing_loan_is_a_noop(session, owner):
    assert recalculate(session, 999, owner) is None


def test_settles_within_a_cent_and_reverts(session, owner, cash):
    loan = _lend(session, owner)
    _repay(session, owner, cash.id, loan.id, "60")
    last = _repay(session, owner, cash.id, loan.id, "39.98")
    assert get_loan(session, loan.id, owner).status == "active"

    update_transaction(session, last.id, owner, {"amount": "39.99"})
    loan = get_loan(session, loan.id, owner)
    assert loan.status == "settled"
    assert loan.paid_amount == Decimal("99.99")

    delete_transaction(session, last.id, owner)
    loan = get_loan(session, loan.id, owner)
    assert loan.status == "active"
    assert loan.paid_amount == Decimal("60.00")


def test_only_counted_type_reduces_a_loan(session, owner, cash):
    borrow = create_loan(
        session,
        owner,
        direction="borrow",
        person="Bank",
        total_amount="50",
        start_date=DAY,
    )
    with pytest.raises(InvalidArgument):
        _repay(session, owner, cash.id, borrow.id, "10")

    create_transaction(
        session,
        owner,
        {"type": "expense", "amount": "50", "wallet_id": cash.id, "loan_id": borrow.id, "date": DAY},
    )
    assert get_loan(session, borrow.id, owner).status == "settled"


def test_bad_debt_is_sticky_until_fully_covered(session, owner, cash):
    loan = _lend(session, owner)
    _repay(session, owner, cash.id, loan.id, "30")
    update_loan(session, loan.id, owner, status="bad_debt")
    assert get_loan(session, loan.id, owner).status == "bad_debt"

    tx = _repay(session, owner, cash.id, loan.id, "10")
    assert get_loan(session, loan.id, owner).status == "bad_debt"

    update_transaction(session, tx.id, owner, {"amount": "70"})
    assert get_loan(session, loan.id, owner).status == "settled"


def test_cross_currency_repayment_is_normalized_to_loan_currency(session, owner, cash):
    loan = _lend(session, owner, total="100", currency="USD")

    # Entered in the wallet currency: ambiguous against the loan, refused.
    with pytest.raises(InvalidArgument):
        _repay(session, owner, cash.id, loan.id, "210")

    tx = _repay(session, owner, cash.id, loan.id, "50", currency="USD", exchange_rate="4.2")
    assert tx.amount == Decimal("210")
    assert get_wallet(session, cash.id, owner).balance == Decimal("210")
    assert get_loan(session, loan.id, owner).paid_amount == Decimal("50.00")


def test_moving_a_transaction_between_loans_reconciles_both(session, owner, cash):
    first = _lend(session, owner)
    second = _lend(session, owner, total="20")
    tx = _repay(session, owner, cash.id, first.id, "20")

    update_transaction(session, tx.id, owner, {"loan_id": second.id})

    assert get_loan(session, first.id, owner).paid_amount == Decimal("0")
    assert get_loan(session, second.id, owner).status == "settled"
    assert [t.id for t in list_transactions_for_loan(session, second.id, owner)] == [tx.id]


def test_delete_loan_unlinks_transactions(session, owner, cash):
    loan = _lend(session, owner)
    tx = _repay(session, owner, cash.id, loan.id, "25")

    delete_loan(session, loan.id, owner)

    with pytest.raises(NotFound):
        get_loan(session, loan.id, owner)
    kept = get_transaction(session, tx.id, owner)
    assert kept.loan_id is None
    assert get_wallet(session, cash.id, owner).balance == Decimal("25")


def test_loan_validation_and_listing(session, owner, cash):
    with pytest.raises(InvalidArgument):
        create_loan(session, owner, direction="gift", person="x", total_amount="1", start_date=DAY)
    with pytest.raises(InvalidArgument):
        create_loan(session, owner, direction="lend", person=" ", total_amount="1", start_date=DAY)
    with pytest.raises(InvalidArgument):
        create_loan(
            session,
            owner,
            direction="lend",
            person="x",
            total_amount="1",
            start_date=DAY,
            due_date=DAY - dt.timedelta(days=1),
        )

    old = _lend(session, owner)
    newer = create_loan(
        session,
        owner,
        direction="borrow",
        person="Mei",
        total_amount="10",
        start_date=DAY + dt.timedelta(days=3),
    )
    assert [loan.id for loan in list_loans(session, owner)] == [newer.id, old.id]

    _repay(session, owner, cash.id, old.id, "5")
    with pytest.raises(InvalidArgument):
        update_loan(session, old.id, owner, currency="USD")
