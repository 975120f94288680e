# ruff: noqa: I001
"""Transaction journal: create, edit and delete postings with their balance effects.

Every mutation follows the same shape inside the caller's session:

1. Parse and validate the input (pydantic, then ownership and currency
   checks). Nothing is written until validation has passed.
2. Persist the row.
3. Apply balance deltas through :func:`wallet_ledger.wallets.adjust_balance`.
   Edits reverse the old effect before applying the new one.
4. Reconcile any linked loan (old and new on edits).

``signed_effects`` is the single definition of what a row does to wallet
balances; apply, reverse and journal replay all use it.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from pydantic import ValidationError
from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from ledger_db.models.ledger import Category, Loan, SubLedger, Transaction

from . import loans
from .currency import ONE, ZERO, convert, fit_storage, to_decimal, validate_currency
from .errors import InvalidArgument, NotFound, invalid_from_validation
from .logging_setup import get_logger
from .models import TransactionFilters, TransactionInput, TransactionPatch
from .wallets import adjust_balance, find_wallet, get_wallet

logger = get_logger("wallet_ledger.journal")

_TRANSFER_ONLY = ("to_wallet_id", "to_wallet_amount", "to_exchange_rate")
_METADATA_FIELDS = {"description", "category_id", "sub_ledger_id", "date"}


# ---------------------------
# Balance effects
# ---------------------------


def signed_effects(tx: Transaction) -> list[tuple[int, Decimal]]:
    """Return ``(wallet_id, delta)`` pairs describing ``tx``'s balance effect.

    Detached legs (wallet reference cleared) contribute nothing.
    """

    amount = to_decimal(tx.amount)
    effects: list[tuple[int, Decimal]] = []
    if tx.type == "expense":
        if tx.wallet_id is not None:
            effects.append((tx.wallet_id, -amount))
    elif tx.type == "income":
        if tx.wallet_id is not None:
            effects.append((tx.wallet_id, amount))
    elif tx.type == "transfer":
        if tx.wallet_id is not None:
            effects.append((tx.wallet_id, -amount))
        if tx.to_wallet_id is not None:
            credited = amount if tx.to_wallet_amount is None else to_decimal(tx.to_wallet_amount)
            effects.append((tx.to_wallet_id, credited))
    return effects


def _apply(
    session: Session,
    owner_id: str,
    effects: Iterable[tuple[int, Decimal]],
    *,
    reverse: bool = False,
) -> None:
    for wallet_id, delta in effects:
        adjust_balance(session, wallet_id, owner_id, -delta if reverse else delta)


def _reconcile(session: Session, owner_id: str, loan_ids: Iterable[int | None]) -> None:
    for loan_id in sorted({lid for lid in loan_ids if lid is not None}):
        loans.recalculate(session, loan_id, owner_id)


# ---------------------------
# Validation / resolution
# ---------------------------


def _parse_input(data: TransactionInput | Mapping[str, Any]) -> TransactionInput:
    if isinstance(data, TransactionInput):
        return data
    try:
        return TransactionInput.model_validate(dict(data))
    except ValidationError as exc:
        raise invalid_from_validation(exc) from None


def _parse_patch(patch: TransactionPatch | Mapping[str, Any]) -> TransactionPatch:
    if isinstance(patch, TransactionPatch):
        return patch
    try:
        return TransactionPatch.model_validate(dict(patch))
    except ValidationError as exc:
        raise invalid_from_validation(exc) from None


def _check_category(session: Session, owner_id: str, category_id: int | None) -> None:
    if category_id is None:
        return
    found = session.execute(
        select(Category.id).where(Category.id == category_id, Category.owner_id == owner_id)
    ).scalar_one_or_none()
    if found is None:
        raise InvalidArgument("Invalid category")


def _check_sub_ledger(session: Session, owner_id: str, sub_ledger_id: int | None) -> None:
    if sub_ledger_id is None:
        return
    found = session.execute(
        select(SubLedger.id).where(SubLedger.id == sub_ledger_id, SubLedger.owner_id == owner_id)
    ).scalar_one_or_none()
    if found is None:
        raise InvalidArgument("Invalid sub-ledger")


def _check_loan(
    session: Session,
    owner_id: str,
    data: TransactionInput,
    wallet_currency: str,
    input_currency: str,
) -> None:
    if data.loan_id is None:
        return
    loan = session.execute(
        select(Loan).where(Loan.id == data.loan_id, Loan.owner_id == owner_id)
    ).scalar_one_or_none()
    if loan is None:
        raise InvalidArgument("Invalid loan")
    expected = "income" if loan.direction == "lend" else "expense"
    if data.type != expected:
        raise InvalidArgument(f"A {loan.direction} loan only accepts {expected} transactions")
    # Reconciliation divides the wallet amount by the stored rate, which only
    # yields loan currency when the input itself was in loan currency.
    if wallet_currency != loan.currency and input_currency != loan.currency:
        raise InvalidArgument(
            f"Enter this repayment in {loan.currency} with the exchange rate to "
            f"{wallet_currency} (1 {loan.currency} = rate {wallet_currency})"
        )


def _resolve(session: Session, owner_id: str, data: TransactionInput) -> dict[str, Any]:
    """Turn validated input into column values, checking ownership. No writes."""

    wallet = find_wallet(session, data.wallet_id, owner_id)
    if wallet is None:
        raise InvalidArgument("Invalid wallet")

    input_currency = validate_currency(data.currency) if data.currency else wallet.currency
    if input_currency != wallet.currency:
        if data.exchange_rate is None:
            raise InvalidArgument("Exchange rate is required for cross-currency transactions")
        rate = data.exchange_rate
        amount = fit_storage(convert(data.amount, rate))
        original_amount: Decimal | None = data.amount
        original_currency: str | None = input_currency
    else:
        rate = ONE
        amount = data.amount
        original_amount = None
        original_currency = None
    if amount <= ZERO:
        raise InvalidArgument("Converted amount must be greater than zero")

    to_wallet_id = None
    to_wallet_amount = None
    to_exchange_rate = None
    if data.type == "transfer":
        to_wallet = find_wallet(session, data.to_wallet_id, owner_id)
        if to_wallet is None:
            raise InvalidArgument("Invalid destination wallet")
        to_wallet_id = to_wallet.id
        if to_wallet.currency != wallet.currency:
            if data.to_wallet_amount is None:
                raise InvalidArgument("Cross-currency transfer requires the destination amount")
            to_wallet_amount = data.to_wallet_amount
            to_exchange_rate = data.to_exchange_rate
        else:
            # Same currency: the destination is credited exactly what left the source.
            to_wallet_amount = amount

    _check_category(session, owner_id, data.category_id)
    _check_sub_ledger(session, owner_id, data.sub_ledger_id)
    _check_loan(session, owner_id, data, wallet.currency, input_currency)

    return {
        "type": data.type,
        "amount": amount,
        "currency": wallet.currency,
        "original_amount": original_amount,
        "original_currency": original_currency,
        "exchange_rate": rate,
        "wallet_id": wallet.id,
        "to_wallet_id": to_wallet_id,
        "to_wallet_amount": to_wallet_amount,
        "to_exchange_rate": to_exchange_rate,
        "category_id": data.category_id,
        "sub_ledger_id": data.sub_ledger_id,
        "loan_id": data.loan_id,
        "description": data.description,
        "date": data.date,
    }


def _stored_input(tx: Transaction) -> dict[str, Any]:
    """Rebuild the input a stored row was created from."""

    converted = tx.original_currency is not None
    return {
        "type": tx.type,
        "amount": tx.original_amount if converted else tx.amount,
        "currency": tx.original_currency if converted else tx.currency,
        "exchange_rate": tx.exchange_rate if converted else None,
        "wallet_id": tx.wallet_id,
        "to_wallet_id": tx.to_wallet_id,
        "to_wallet_amount": tx.to_wallet_amount,
        "to_exchange_rate": tx.to_exchange_rate,
        "category_id": tx.category_id,
        "sub_ledger_id": tx.sub_ledger_id,
        "loan_id": tx.loan_id,
        "description": tx.description,
        "date": tx.date,
    }


def _merge_patch(tx: Transaction, changes: dict[str, Any]) -> dict[str, Any]:
    merged = _stored_input(tx)

    # A new wallet on a same-currency row keeps meaning "amount in the wallet
    # currency"; a converted row keeps its input currency.
    if "wallet_id" in changes and "currency" not in changes and tx.original_currency is None:
        merged["currency"] = None
    if ("wallet_id" in changes or "currency" in changes) and "exchange_rate" not in changes:
        merged["exchange_rate"] = None
    # The destination amount is tied to the source leg; it must be restated.
    source_leg = {"amount", "wallet_id", "to_wallet_id", "currency", "exchange_rate", "type"}
    if source_leg & changes.keys():
        for key in ("to_wallet_amount", "to_exchange_rate"):
            if key not in changes:
                merged[key] = None

    merged.update(changes)
    if merged["type"] != "transfer":
        for key in _TRANSFER_ONLY:
            if key not in changes:
                merged[key] = None
    return merged


# ---------------------------
# Reads
# ---------------------------


def get_transaction(session: Session, transaction_id: int, owner_id: str) -> Transaction:
    row = session.execute(
        select(Transaction).where(
            Transaction.id == transaction_id, Transaction.owner_id == owner_id
        )
    ).scalar_one_or_none()
    if row is None:
        raise NotFound(f"Transaction {transaction_id} not found")
    return row


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def list_transactions(
    session: Session, owner_id: str, filters: TransactionFilters | None = None
) -> list[Transaction]:
    """Return the owner's transactions, most recent first.

    Ordering is ``date`` descending with ties broken by ``id`` descending. Date
    bounds are inclusive. ``wallet_id`` matches either leg of a transfer.
    ``search`` is a case-insensitive substring match over the description and
    the category name.
    """

    f = filters or TransactionFilters()
    stmt = (
        select(Transaction)
        .outerjoin(Category, Transaction.category_id == Category.id)
        .where(Transaction.owner_id == owner_id)
    )
    if f.start_date is not None:
        stmt = stmt.where(Transaction.date >= f.start_date)
    if f.end_date is not None:
        stmt = stmt.where(Transaction.date <= f.end_date)
    if f.category_id is not None:
        stmt = stmt.where(Transaction.category_id == f.category_id)
    if f.wallet_id is not None:
        stmt = stmt.where(
            or_(Transaction.wallet_id == f.wallet_id, Transaction.to_wallet_id == f.wallet_id)
        )
    if f.type is not None:
        stmt = stmt.where(Transaction.type == f.type)
    if f.sub_ledger_id is not None:
        stmt = stmt.where(Transaction.sub_ledger_id == f.sub_ledger_id)
    if f.loan_id is not None:
        stmt = stmt.where(Transaction.loan_id == f.loan_id)
    if f.search and f.search.strip():
        pattern = _like_pattern(f.search.strip())
        stmt = stmt.where(
            or_(
                Transaction.description.ilike(pattern, escape="\\"),
                Category.name.ilike(pattern, escape="\\"),
            )
        )
    stmt = stmt.order_by(Transaction.date.desc(), Transaction.id.desc())
    if f.offset:
        stmt = stmt.offset(f.offset)
    if f.limit is not None:
        stmt = stmt.limit(f.limit)
    return list(session.execute(stmt).scalars().all())


def list_transactions_for_loan(session: Session, loan_id: int, owner_id: str) -> list[Transaction]:
    loans.get_loan(session, loan_id, owner_id)
    return list(
        session.execute(
            select(Transaction)
            .where(Transaction.loan_id == loan_id, Transaction.owner_id == owner_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        .scalars()
        .all()
    )


# ---------------------------
# Mutations
# ---------------------------


def create_transaction(
    session: Session, owner_id: str, data: TransactionInput | Mapping[str, Any]
) -> Transaction:
    """Post a transaction and apply its balance effects.

    Raises ``InvalidArgument`` for malformed type-specific fields, a missing
    cross-currency rate or destination amount, non-positive amounts, and
    references to wallets, categories, sub-ledgers or loans the owner does
    not have.
    """

    parsed = _parse_input(data)
    values = _resolve(session, owner_id, parsed)

    tx = Transaction(owner_id=owner_id, **values)
    session.add(tx)
    session.flush()

    _apply(session, owner_id, signed_effects(tx))
    _reconcile(session, owner_id, [tx.loan_id])
    logger.info(
        "posted %s %s %s (tx %s, wallet %s)",
        tx.type,
        tx.amount,
        tx.currency,
        tx.id,
        tx.wallet_id,
    )
    return tx


def update_transaction(
    session: Session,
    transaction_id: int,
    owner_id: str,
    patch: TransactionPatch | Mapping[str, Any],
) -> Transaction:
    """Apply a partial edit, reversing the old balance effect before the new one.

    Changing the wallet or input currency drops the stored input rate, and
    any change to the source leg (type, amount, wallets, currency or rate)
    drops the transfer destination amount and rate, unless the patch restates
    them. An amount-only edit of a converted row keeps its rate.
    Rows whose wallet was deleted with its history detached only accept
    ``description``, ``category_id``, ``sub_ledger_id`` and ``date`` edits
    unless the patch assigns a wallet again.
    """

    tx = get_transaction(session, transaction_id, owner_id)
    changes = _parse_patch(patch).model_dump(exclude_unset=True)
    if not changes:
        return tx

    detached = tx.wallet_id is None or (tx.type == "transfer" and tx.to_wallet_id is None)
    if detached and not ({"wallet_id", "to_wallet_id"} & changes.keys()):
        return _update_detached(session, tx, owner_id, changes)

    data = _parse_input(_merge_patch(tx, changes))
    values = _resolve(session, owner_id, data)

    old_effects = signed_effects(tx)
    old_loan_id = tx.loan_id

    _apply(session, owner_id, old_effects, reverse=True)
    for key, value in values.items():
        setattr(tx, key, value)
    session.flush()
    _apply(session, owner_id, signed_effects(tx))
    _reconcile(session, owner_id, [old_loan_id, tx.loan_id])

    logger.info("edited tx %s: %s", tx.id, ", ".join(sorted(changes)))
    return tx


def _update_detached(
    session: Session, tx: Transaction, owner_id: str, changes: dict[str, Any]
) -> Transaction:
    blocked = set(changes) - _METADATA_FIELDS
    if blocked:
        raise InvalidArgument(
            "Transaction is detached from a deleted wallet; assign a wallet to change "
            + ", ".join(sorted(blocked))
        )
    if changes.get("date", tx.date) is None:
        raise InvalidArgument("date cannot be empty")
    _check_category(session, owner_id, changes.get("category_id"))
    _check_sub_ledger(session, owner_id, changes.get("sub_ledger_id"))
    for key, value in changes.items():
        setattr(tx, key, value)
    session.flush()
    logger.info("edited detached tx %s: %s", tx.id, ", ".join(sorted(changes)))
    return tx


def delete_transaction(session: Session, transaction_id: int, owner_id: str) -> None:
    """Remove a transaction, reversing its balance effect and reconciling its loan."""

    tx = get_transaction(session, transaction_id, owner_id)
    loan_id = tx.loan_id
    _apply(session, owner_id, signed_effects(tx), reverse=True)
    session.delete(tx)
    session.flush()
    _reconcile(session, owner_id, [loan_id])
    logger.info("deleted tx %s", transaction_id)


def _rows_touching(session: Session, wallet_id: int, owner_id: str) -> list[Transaction]:
    return list(
        session.execute(
            select(Transaction).where(
                Transaction.owner_id == owner_id,
                or_(Transaction.wallet_id == wallet_id, Transaction.to_wallet_id == wallet_id),
            )
        )
        .scalars()
        .all()
    )


def delete_all_for_wallet(session: Session, wallet_id: int, owner_id: str) -> int:
    """Delete every transaction where the wallet is the source or destination.

    Each row's full effect is reversed, so the counterpart wallet of a
    transfer gets its leg back and the wallet itself returns to its opening
    balance. Linked loans are reconciled afterwards. Returns the row count.
    """

    get_wallet(session, wallet_id, owner_id)
    rows = _rows_touching(session, wallet_id, owner_id)
    loan_ids = [tx.loan_id for tx in rows]
    for tx in rows:
        _apply(session, owner_id, signed_effects(tx), reverse=True)
        session.delete(tx)
    session.flush()
    _reconcile(session, owner_id, loan_ids)
    logger.info("deleted %d transaction(s) for wallet %s", len(rows), wallet_id)
    return len(rows)


def detach_wallet(session: Session, wallet_id: int, owner_id: str) -> int:
    """Clear references to ``wallet_id`` so history survives the wallet's deletion.

    Counterpart wallets keep their transfer legs; balances are untouched.
    Returns the number of rows touched.
    """

    get_wallet(session, wallet_id, owner_id)
    touched = len(_rows_touching(session, wallet_id, owner_id))
    session.execute(
        update(Transaction)
        .where(Transaction.owner_id == owner_id, Transaction.wallet_id == wallet_id)
        .values(wallet_id=None)
        .execution_options(synchronize_session="fetch")
    )
    session.execute(
        update(Transaction)
        .where(Transaction.owner_id == owner_id, Transaction.to_wallet_id == wallet_id)
        .values(to_wallet_id=None)
        .execution_options(synchronize_session="fetch")
    )
    session.flush()
    logger.info("detached %d transaction(s) from wallet %s", touched, wallet_id)
    return touched


__all__ = [
    "create_transaction",
    "delete_all_for_wallet",
    "delete_transaction",
    "detach_wallet",
    "get_transaction",
    "list_transactions",
    "list_transactions_for_loan",
    "signed_effects",
    "update_transaction",
]
