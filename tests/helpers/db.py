"""DB helpers for tests: bootstrap a temporary SQLite ledger DB and owners."""

from __future__ import annotations

import os
from pathlib import Path

from ledger_db import Base
from ledger_db.client import get_engine, session_scope
from ledger_db.models.ledger import User
from sqlalchemy import inspect
from sqlalchemy.orm import Session


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize the schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)
    Base.metadata.create_all(bind=engine)
    _assert_schema_in_sync(url)

    if set_default_env:
        os.environ.setdefault("DATABASE_URL", url)
    return url


def create_owner(database_url: str, owner_id: str, *, default_currency: str = "MYR") -> str:
    """Insert a bare user row (no default data) and return its id."""

    with session_scope(database_url=database_url) as session:
        session.add(User(id=owner_id, email=f"{owner_id}@example.com", default_currency=default_currency))
    return owner_id


def add_owner(session: Session, owner_id: str) -> str:
    """Add a bare user through an open session (no second connection)."""

    session.add(User(id=owner_id, email=f"{owner_id}@example.com"))
    session.flush()
    return owner_id


def _assert_schema_in_sync(database_url: str) -> None:
    """Quick sanity check: every ORM table exists with its full column set."""

    insp = inspect(get_engine(database_url=database_url))
    for table in Base.metadata.sorted_tables:
        got = {c["name"] for c in insp.get_columns(table.name)}
        expected = {c.name for c in table.columns}
        missing = expected - got
        assert not missing, f"{table.name} schema drift: missing={missing}"
