# ruff: noqa: I001
"""Wallet ledger: wallet rows, their cached balances and the default flag.

Balance strategy
----------------
Balances are cached and maintained by delta application: the journal reverses
a transaction's old effect before applying its new one. Every wallet keeps an
``opening_balance`` so that, at all times,

    balance == opening_balance + sum(signed effects of journal rows)

``opening_balance`` starts at zero and moves only through explicit write-offs
(archive with ``destroy``) and direct corrections (``correct_balance`` with
``set_balance``). Those paths log a WARNING because they change a balance
without a journal row.

All functions take a caller-owned ``Session`` and only ``flush``; the caller's
transactional scope decides whether the whole logical operation commits.
"""

from __future__ import annotations

import datetime as dt
import re
from collections.abc import Sequence
from decimal import Decimal
from typing import Any, Literal

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_db.models.ledger import RecurringTransaction, Transaction, Wallet

from .currency import ZERO, convert, fit_storage, positive, to_decimal, validate_currency
from .errors import Conflict, InvalidArgument, NotFound
from .logging_setup import get_logger
from .models import WALLET_TYPES

logger = get_logger("wallet_ledger.wallets")

ARCHIVED_SUFFIX = " (archived)"
_HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")

ArchiveAction = Literal["transfer", "destroy"]
CorrectionMethod = Literal["adjust_income_expense", "set_balance"]


# ---------------------------
# Field validation
# ---------------------------


def _clean_name(name: str | None) -> str:
    n = " ".join((name or "").strip().split())
    if not n:
        raise InvalidArgument("Wallet name cannot be empty")
    if len(n) > 100:
        raise InvalidArgument("Wallet name must be at most 100 characters")
    return n


def _check_type(wallet_type: str) -> str:
    if wallet_type not in WALLET_TYPES:
        raise InvalidArgument(f"Invalid wallet type: {wallet_type!r}")
    return wallet_type


def _check_color(color: str | None) -> str | None:
    if color is None:
        return None
    if not _HEX_COLOR_RE.match(color):
        raise InvalidArgument(f"Invalid color (expected #RRGGBB): {color!r}")
    return color


# ---------------------------
# Reads
# ---------------------------


def list_wallets(
    session: Session, owner_id: str, *, include_archived: bool = True
) -> list[Wallet]:
    stmt = select(Wallet).where(Wallet.owner_id == owner_id)
    if not include_archived:
        stmt = stmt.where(Wallet.is_archived.is_(False))
    return list(session.execute(stmt.order_by(Wallet.id)).scalars().all())


def get_wallet(session: Session, wallet_id: int, owner_id: str) -> Wallet:
    """Return the owner's wallet or raise ``NotFound`` (also on owner mismatch)."""

    row = session.execute(
        select(Wallet).where(Wallet.id == wallet_id, Wallet.owner_id == owner_id)
    ).scalar_one_or_none()
    if row is None:
        raise NotFound(f"Wallet {wallet_id} not found")
    return row


def find_wallet(session: Session, wallet_id: int | None, owner_id: str) -> Wallet | None:
    if wallet_id is None:
        return None
    return session.execute(
        select(Wallet).where(Wallet.id == wallet_id, Wallet.owner_id == owner_id)
    ).scalar_one_or_none()


def get_default_wallet(session: Session, owner_id: str) -> Wallet | None:
    return (
        session.execute(
            select(Wallet)
            .where(Wallet.owner_id == owner_id, Wallet.is_default.is_(True))
            .order_by(Wallet.id)
        )
        .scalars()
        .first()
    )


def _locked_wallet(session: Session, wallet_id: int, owner_id: str) -> Wallet:
    # Re-read under a row lock so concurrent adjustments serialize in the database.
    row = session.execute(
        select(Wallet)
        .where(Wallet.id == wallet_id, Wallet.owner_id == owner_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if row is None:
        raise NotFound(f"Wallet {wallet_id} not found")
    return row


def _has_transactions(session: Session, wallet_id: int) -> bool:
    count = session.execute(
        select(func.count(Transaction.id)).where(
            or_(Transaction.wallet_id == wallet_id, Transaction.to_wallet_id == wallet_id)
        )
    ).scalar_one()
    return bool(count)


def _name_taken(
    session: Session, owner_id: str, name: str, wallet_type: str, *, exclude_id: int | None = None
) -> bool:
    stmt = select(Wallet.id).where(
        Wallet.owner_id == owner_id, Wallet.name == name, Wallet.type == wallet_type
    )
    if exclude_id is not None:
        stmt = stmt.where(Wallet.id != exclude_id)
    return session.execute(stmt.limit(1)).first() is not None


def _is_name_clash(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return "uq_wallets_owner_type_name" in message or "UNIQUE constraint failed: wallets." in message


def _flush_unique(session: Session, name: str, wallet_type: str) -> None:
    # A concurrent writer can claim the name between the check and the flush.
    try:
        session.flush()
    except IntegrityError as exc:
        if _is_name_clash(exc):
            raise Conflict(f"A {wallet_type} wallet named {name!r} already exists") from exc
        raise


def _archived_name(session: Session, wallet: Wallet) -> str:
    if wallet.name.endswith(ARCHIVED_SUFFIX):
        return wallet.name
    base = wallet.name[: 100 - len(ARCHIVED_SUFFIX) - 4]
    candidate = f"{base}{ARCHIVED_SUFFIX}"
    n = 2
    while _name_taken(session, wallet.owner_id, candidate, wallet.type, exclude_id=wallet.id):
        candidate = f"{base} (archived {n})"
        n += 1
    return candidate


# ---------------------------
# Create / update
# ---------------------------


def create_wallet(
    session: Session,
    owner_id: str,
    *,
    name: str,
    type: str,
    currency: str = "MYR",
    exchange_rate_to_default: Any = Decimal("1"),
    icon: str | None = None,
    color: str | None = None,
    is_flexible: bool = True,
    is_default: bool = False,
) -> Wallet:
    """Create an empty wallet (balance 0).

    The first wallet of an owner always becomes the default; later ones only
    when ``is_default=True`` is passed, which moves the flag.
    """

    wallet = Wallet(
        owner_id=owner_id,
        name=_clean_name(name),
        type=_check_type(type),
        currency=validate_currency(currency),
        balance=ZERO,
        opening_balance=ZERO,
        exchange_rate_to_default=positive(
            exchange_rate_to_default, field="exchange_rate_to_default"
        ),
        icon=icon,
        color=_check_color(color),
        is_default=False,
        is_flexible=bool(is_flexible),
        is_archived=False,
    )
    if _name_taken(session, owner_id, wallet.name, wallet.type):
        raise Conflict(f"A {wallet.type} wallet named {wallet.name!r} already exists")
    has_default = get_default_wallet(session, owner_id) is not None
    session.add(wallet)
    _flush_unique(session, wallet.name, wallet.type)

    if is_default or not has_default:
        set_default(session, wallet.id, owner_id)
    logger.info("created wallet %s (%s, %s) for %s", wallet.id, wallet.name, wallet.currency, owner_id)
    return wallet


_UPDATABLE = {
    "name",
    "type",
    "currency",
    "icon",
    "color",
    "is_flexible",
    "is_default",
    "exchange_rate_to_default",
}


def update_wallet(session: Session, wallet_id: int, owner_id: str, **changes: Any) -> Wallet:
    """Apply metadata changes to a wallet.

    The balance is not editable here; use :func:`correct_balance`.
    """

    unknown = set(changes) - _UPDATABLE
    if unknown:
        raise InvalidArgument(f"Cannot update wallet fields: {', '.join(sorted(unknown))}")

    wallet = get_wallet(session, wallet_id, owner_id)

    # Validate everything before the first write.
    values: dict[str, Any] = {}
    if "name" in changes:
        values["name"] = _clean_name(changes["name"])
    if "type" in changes:
        values["type"] = _check_type(changes["type"])
    if "currency" in changes:
        new_currency = validate_currency(changes["currency"])
        if new_currency != wallet.currency:
            if _has_transactions(session, wallet.id) or wallet.balance != ZERO:
                raise Conflict(
                    "Cannot change the currency of a wallet that has a balance or transactions"
                )
            values["currency"] = new_currency
    if "color" in changes:
        values["color"] = _check_color(changes["color"])
    if "icon" in changes:
        values["icon"] = changes["icon"]
    if "is_flexible" in changes:
        values["is_flexible"] = bool(changes["is_flexible"])
    if "exchange_rate_to_default" in changes:
        values["exchange_rate_to_default"] = positive(
            changes["exchange_rate_to_default"], field="exchange_rate_to_default"
        )
    make_default = changes.get("is_default")
    if make_default is False and wallet.is_default:
        raise Conflict("Cannot clear the default wallet; set another wallet as default instead")
    new_name = values.get("name", wallet.name)
    new_type = values.get("type", wallet.type)
    if (new_name, new_type) != (wallet.name, wallet.type) and _name_taken(
        session, owner_id, new_name, new_type, exclude_id=wallet.id
    ):
        raise Conflict(f"A {new_type} wallet named {new_name!r} already exists")

    for key, value in values.items():
        setattr(wallet, key, value)
    _flush_unique(session, new_name, new_type)

    if make_default:
        set_default(session, wallet.id, owner_id)
    return wallet


# ---------------------------
# Balance and default flag
# ---------------------------


def adjust_balance(session: Session, wallet_id: int, owner_id: str, delta: Any) -> Wallet:
    """Atomically add ``delta`` (positive or negative) to the cached balance."""

    d = to_decimal(delta, field="delta")
    wallet = _locked_wallet(session, wallet_id, owner_id)
    wallet.balance = to_decimal(wallet.balance) + d
    session.flush()
    logger.debug("wallet %s balance %+s -> %s", wallet.id, d, wallet.balance)
    return wallet


def set_default(session: Session, wallet_id: int, owner_id: str) -> Wallet:
    """Make ``wallet_id`` the owner's only default wallet."""

    target = get_wallet(session, wallet_id, owner_id)
    session.execute(
        update(Wallet)
        .where(Wallet.owner_id == owner_id, Wallet.id != target.id)
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )
    target.is_default = True
    session.flush()
    return target


def _hand_off_default(session: Session, wallet: Wallet) -> None:
    if not wallet.is_default:
        return
    candidates = [
        w
        for w in list_wallets(session, wallet.owner_id)
        if w.id != wallet.id
    ]
    # Prefer live wallets over archived ones.
    candidates.sort(key=lambda w: (w.is_archived, w.id))
    if not candidates:
        return
    set_default(session, candidates[0].id, wallet.owner_id)
    logger.info("default wallet moved from %s to %s", wallet.id, candidates[0].id)


# ---------------------------
# Archive / delete
# ---------------------------


def archive_wallet(
    session: Session,
    wallet_id: int,
    owner_id: str,
    action: ArchiveAction,
    *,
    target_wallet_id: int | None = None,
    rate: Any = None,
    on: dt.date | None = None,
) -> Wallet:
    """Retire a wallet, dealing with its remaining balance first.

    Parameters
    ----------
    action:
        ``"transfer"`` moves the balance into ``target_wallet_id`` through a
        regular journal transfer (source to target for a positive balance,
        target to source for a negative one). ``rate`` means
        ``1 source currency = rate target currency`` and is required when the
        currencies differ. ``"destroy"`` zeroes the balance without a journal
        row and shifts ``opening_balance`` by the same amount.
    on:
        Date for the synthetic transfer (defaults to today).

    Returns
    -------
    Wallet
        The archived wallet: not flexible, hidden, named with an
        ``" (archived)"`` suffix (``" (archived 2)"`` and so on when an
        archived wallet of the same name and type already exists).
    """

    from . import journal  # local import: journal depends on this module

    wallet = get_wallet(session, wallet_id, owner_id)
    if wallet.is_archived:
        raise Conflict(f"Wallet {wallet_id} is already archived")
    balance = to_decimal(wallet.balance)

    if action == "transfer":
        if target_wallet_id is None:
            raise InvalidArgument("Archive transfer requires a target wallet")
        if target_wallet_id == wallet.id:
            raise InvalidArgument("Cannot archive a wallet into itself")
        target = get_wallet(session, target_wallet_id, owner_id)
        cross = target.currency != wallet.currency
        if cross and rate is None:
            raise InvalidArgument("Exchange rate is required when currencies differ")
        r = positive(rate, field="rate") if cross else None

        if balance != ZERO:
            moved = abs(balance)
            in_target = fit_storage(convert(moved, r)) if r is not None else moved
            if balance > ZERO:
                data = {
                    "type": "transfer",
                    "wallet_id": wallet.id,
                    "to_wallet_id": target.id,
                    "amount": moved,
                    "to_wallet_amount": in_target if cross else None,
                    "to_exchange_rate": r,
                }
            else:
                data = {
                    "type": "transfer",
                    "wallet_id": target.id,
                    "to_wallet_id": wallet.id,
                    "amount": in_target,
                    "to_wallet_amount": moved if cross else None,
                }
            data["date"] = on or dt.date.today()
            data["description"] = f"Archive transfer: {wallet.name}"
            journal.create_transaction(session, owner_id, data)
            logger.info(
                "archive transfer of %s %s from wallet %s to %s",
                balance,
                wallet.currency,
                wallet.id,
                target.id,
            )
    elif action == "destroy":
        if balance != ZERO:
            wallet.opening_balance = to_decimal(wallet.opening_balance) - balance
            wallet.balance = ZERO
            logger.warning(
                "wallet %s balance of %s %s written off on archive (no journal row)",
                wallet.id,
                balance,
                wallet.currency,
            )
    else:
        raise InvalidArgument(f"Unknown archive action: {action!r}")

    wallet.is_flexible = False
    wallet.is_archived = True
    wallet.name = _archived_name(session, wallet)
    _flush_unique(session, wallet.name, wallet.type)
    _hand_off_default(session, wallet)
    logger.info("archived wallet %s (%s)", wallet.id, action)
    return wallet


def delete_wallet(
    session: Session,
    wallet_id: int,
    owner_id: str,
    *,
    delete_transactions: bool = False,
) -> None:
    """Delete a wallet, either cascading or detaching its history.

    With ``delete_transactions=True`` every transaction touching the wallet is
    removed and its effect on other wallets reversed. Otherwise the rows stay
    in history with the wallet reference cleared. Recurring templates posting
    into the wallet are removed in both cases.
    """

    from . import journal  # local import

    wallet = get_wallet(session, wallet_id, owner_id)
    owned = session.execute(
        select(func.count(Wallet.id)).where(Wallet.owner_id == owner_id)
    ).scalar_one()
    if owned <= 1:
        raise Conflict("Cannot delete the only remaining wallet")

    _hand_off_default(session, wallet)

    if delete_transactions:
        journal.delete_all_for_wallet(session, wallet.id, owner_id)
    else:
        journal.detach_wallet(session, wallet.id, owner_id)

    session.execute(
        delete(RecurringTransaction).where(
            RecurringTransaction.wallet_id == wallet.id,
            RecurringTransaction.owner_id == owner_id,
        )
    )
    session.delete(wallet)
    session.flush()
    logger.info(
        "deleted wallet %s for %s (transactions %s)",
        wallet_id,
        owner_id,
        "deleted" if delete_transactions else "detached",
    )


# ---------------------------
# Corrections and verification
# ---------------------------


def correct_balance(
    session: Session,
    wallet_id: int,
    owner_id: str,
    target: Any,
    method: CorrectionMethod,
    *,
    on: dt.date | None = None,
) -> Transaction | None:
    """Bring a wallet's balance to ``target``.

    ``adjust_income_expense`` posts an income or expense "Balance correction"
    for the difference (returned). ``set_balance`` rebases the wallet so the
    balance and opening balance move together and returns ``None``.
    """

    from . import categories, journal  # local import

    wallet = get_wallet(session, wallet_id, owner_id)
    goal = to_decimal(target, field="target")
    diff = goal - to_decimal(wallet.balance)
    if diff == ZERO:
        return None

    if method == "adjust_income_expense":
        tx_type = "income" if diff > ZERO else "expense"
        other = categories.get_category_by_name(session, owner_id, "Other", tx_type)
        return journal.create_transaction(
            session,
            owner_id,
            {
                "type": tx_type,
                "wallet_id": wallet.id,
                "amount": abs(diff),
                "category_id": other.id if other is not None else None,
                "description": "Balance correction",
                "date": on or dt.date.today(),
            },
        )
    if method == "set_balance":
        wallet.balance = goal
        wallet.opening_balance = to_decimal(wallet.opening_balance) + diff
        session.flush()
        logger.warning(
            "wallet %s balance set to %s %s (difference %s, no journal row)",
            wallet.id,
            goal,
            wallet.currency,
            diff,
        )
        return None
    raise InvalidArgument(f"Unknown correction method: {method!r}")


def journal_balance(session: Session, wallet: Wallet) -> Decimal:
    """Replay the journal: ``opening_balance`` plus every signed effect on ``wallet``."""

    from .journal import signed_effects  # local import

    rows: Sequence[Transaction] = (
        session.execute(
            select(Transaction).where(
                Transaction.owner_id == wallet.owner_id,
                or_(Transaction.wallet_id == wallet.id, Transaction.to_wallet_id == wallet.id),
            )
        )
        .scalars()
        .all()
    )
    total = to_decimal(wallet.opening_balance)
    for tx in rows:
        for affected, delta in signed_effects(tx):
            if affected == wallet.id:
                total += delta
    return total


def balance_drift(session: Session, wallet_id: int, owner_id: str) -> Decimal:
    """Cached balance minus the replayed journal balance (zero when consistent)."""

    wallet = get_wallet(session, wallet_id, owner_id)
    return to_decimal(wallet.balance) - journal_balance(session, wallet)


__all__ = [
    "ARCHIVED_SUFFIX",
    "adjust_balance",
    "archive_wallet",
    "balance_drift",
    "correct_balance",
    "create_wallet",
    "delete_wallet",
    "find_wallet",
    "get_default_wallet",
    "get_wallet",
    "journal_balance",
    "list_wallets",
    "set_default",
    "update_wallet",
]
