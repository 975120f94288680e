# ruff: noqa: E402, I001
"""Pytest configuration: one throwaway SQLite ledger per test.

Each test gets its own file-backed database under ``tmp_path`` so committed
state never leaks between tests. ``session`` is a plain session bound to that
database; service calls only flush, so tests read their own writes without
committing. ``owner`` is a bare user with no default wallets or categories.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from ledger_db.client import dispose_engines, get_session
from sqlalchemy.orm import Session

from tests.helpers.db import bootstrap_sqlite_db, create_owner


@pytest.fixture
def db_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[str]:
    url = bootstrap_sqlite_db(tmp_path / "ledger.sqlite3")
    monkeypatch.setenv("DATABASE_URL", url)
    yield url
    dispose_engines()


@pytest.fixture
def session(db_url: str) -> Iterator[Session]:
    s = get_session(database_url=db_url)
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def owner(db_url: str) -> str:
    return create_owner(db_url, "user-1")
