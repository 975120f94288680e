# ruff: noqa: I001
"""
Alembic environment for the ``ledger_db`` library.

URL resolution: ``DATABASE_URL`` (a workspace ``.env`` is honored, without
overriding the shell) wins over ``sqlalchemy.url`` in ``alembic.ini``.
SQLite databases are migrated in batch mode so ALTERs work there too.
"""

from __future__ import annotations

import os
import logging
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import engine_from_config, pool
from dotenv import load_dotenv, find_dotenv


config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")


def _database_url() -> str:
    # usecwd=True finds the repo-level .env from the root or from libs/db.
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set. Provide it via environment or set "
            "'sqlalchemy.url' in alembic.ini."
        )
    return url


def _target_metadata() -> Any:
    try:  # pragma: no cover - import side effects only
        from ledger_db import metadata
    except ImportError as exc:  # pragma: no cover
        logger.warning("ledger_db is not importable; autogenerate disabled (%s)", exc)
        return None
    return metadata


db_url = _database_url()
config.set_main_option("sqlalchemy.url", db_url)
config.set_section_option(config.config_ini_section, "sqlalchemy.url", db_url)
target_metadata = _target_metadata()


def _common_options(dialect_name: str) -> dict[str, Any]:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": dialect_name == "sqlite",
    }


def run_migrations_offline() -> None:
    """Emit SQL for the configured URL without connecting."""
    context.configure(
        url=db_url,
        literal_binds=True,
        **_common_options(db_url.split(":", 1)[0].split("+", 1)[0]),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations over a live connection."""
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = db_url
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, **_common_options(connection.dialect.name))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
