# ruff: noqa: I001
"""Ledger core tables: owners, wallets, categories, sub-ledgers, loans, transactions.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# SQLite has no exact decimal type; the ORM stores canonical strings there.
MONEY = sa.Numeric(20, 8).with_variant(sa.String(22), "sqlite")
RATE = sa.Numeric(20, 10).with_variant(sa.String(22), "sqlite")


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _owner_fk(index: bool = True) -> sa.Column:
    return sa.Column(
        "owner_id",
        sa.String(),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=index,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("email", sa.String(), nullable=True, unique=True),
        sa.Column(
            "default_currency", sa.String(10), nullable=False, server_default=sa.text("'MYR'")
        ),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "wallets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _owner_fk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False, server_default=sa.text("'MYR'")),
        sa.Column("balance", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("opening_balance", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("exchange_rate_to_default", RATE, nullable=False, server_default=sa.text("1")),
        sa.Column("icon", sa.String(50), nullable=True),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_flexible", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.CheckConstraint(
            "type in ('cash','bank_card','digital_wallet','credit_card','investment')",
            name="ck_wallets_type",
        ),
        sa.CheckConstraint("exchange_rate_to_default > 0", name="ck_wallets_rate_positive"),
        sa.UniqueConstraint("owner_id", "type", "name", name="uq_wallets_owner_type_name"),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _owner_fk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("icon", sa.String(50), nullable=True),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.UniqueConstraint("owner_id", "type", "name", name="uq_categories_owner_type_name"),
        sa.CheckConstraint("type in ('expense','income')", name="ck_categories_type"),
    )

    op.create_table(
        "sub_ledgers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _owner_fk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(50), nullable=True),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("budget_amount", MONEY, nullable=True),
        sa.Column(
            "include_in_main_analytics", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "loans",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _owner_fk(),
        sa.Column("direction", sa.String(20), nullable=False),
        sa.Column("person", sa.String(100), nullable=False),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(10), nullable=False, server_default=sa.text("'MYR'")),
        sa.Column("paid_amount", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("direction in ('lend','borrow')", name="ck_loans_direction"),
        sa.CheckConstraint("status in ('active','settled','bad_debt')", name="ck_loans_status"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _owner_fk(index=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(10), nullable=False),
        sa.Column("original_amount", MONEY, nullable=True),
        sa.Column("original_currency", sa.String(10), nullable=True),
        sa.Column("exchange_rate", RATE, nullable=False, server_default=sa.text("1")),
        sa.Column(
            "wallet_id",
            sa.Integer(),
            sa.ForeignKey("wallets.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "to_wallet_id",
            sa.Integer(),
            sa.ForeignKey("wallets.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("to_wallet_amount", MONEY, nullable=True),
        sa.Column("to_exchange_rate", RATE, nullable=True),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "sub_ledger_id",
            sa.Integer(),
            sa.ForeignKey("sub_ledgers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "loan_id",
            sa.Integer(),
            sa.ForeignKey("loans.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        _created_at(),
        sa.CheckConstraint("type in ('expense','income','transfer')", name="ck_tx_type"),
        sa.CheckConstraint("amount > 0", name="ck_tx_amount_positive"),
        sa.CheckConstraint(
            "type = 'transfer' OR (to_wallet_amount IS NULL AND to_exchange_rate IS NULL)",
            name="ck_tx_transfer_fields",
        ),
    )
    op.create_index("ix_transactions_owner_date", "transactions", ["owner_id", "date"])
    op.create_index("ix_transactions_wallet", "transactions", ["wallet_id"])
    op.create_index("ix_transactions_category", "transactions", ["category_id"])
    op.create_index("ix_transactions_loan", "transactions", ["loan_id"])


def downgrade() -> None:
    op.drop_index("ix_transactions_loan", table_name="transactions")
    op.drop_index("ix_transactions_category", table_name="transactions")
    op.drop_index("ix_transactions_wallet", table_name="transactions")
    op.drop_index("ix_transactions_owner_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("loans")
    op.drop_table("sub_ledgers")
    op.drop_table("categories")
    op.drop_table("wallets")
    op.drop_table("users")
