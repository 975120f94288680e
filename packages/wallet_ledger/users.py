"""Owners: creation/update and the reporting currency."""

from __future__ import annotations

import datetime as dt

from sqlalchemy.orm import Session

from ledger_db.models.ledger import User

from .currency import validate_currency
from .errors import NotFound
from .logging_setup import get_logger
from .seed import initialize_defaults
from .wallets import list_wallets

logger = get_logger("wallet_ledger.users")


def find_user(session: Session, user_id: str) -> User | None:
    return session.get(User, user_id)


def get_user(session: Session, user_id: str) -> User:
    user = find_user(session, user_id)
    if user is None:
        raise NotFound(f"User {user_id!r} not found")
    return user


def upsert_user(
    session: Session,
    user_id: str,
    *,
    email: str | None = None,
    default_currency: str | None = None,
) -> User:
    """Create or update an owner, bootstrapping default data for new ones.

    Defaults are seeded when the user is created here or still has no wallet,
    so a user who deleted a default wallet does not get it back on the next
    sign-in.
    """

    user = session.get(User, user_id)
    created = user is None
    if user is None:
        user = User(id=user_id, email=email, default_currency=validate_currency(default_currency or "MYR"))
        session.add(user)
    else:
        if email is not None:
            user.email = email
        if default_currency is not None:
            user.default_currency = validate_currency(default_currency)
        user.updated_at = dt.datetime.now(dt.UTC)
    session.flush()

    if created or not list_wallets(session, user_id):
        initialize_defaults(session, user_id, user.default_currency)
    if created:
        logger.info("created user %s", user_id)
    return user


def update_default_currency(session: Session, user_id: str, currency: str) -> User:
    """Change the reporting currency.

    Wallet ``exchange_rate_to_default`` values are not touched; callers that
    switch currency are expected to restate them.
    """

    user = get_user(session, user_id)
    user.default_currency = validate_currency(currency)
    user.updated_at = dt.datetime.now(dt.UTC)
    session.flush()
    return user


__all__ = ["find_user", "get_user", "update_default_currency", "upsert_user"]
