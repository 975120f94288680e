from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr


class ExactDecimal(TypeDecorator):
    """Fixed-point column that round-trips ``Decimal`` values exactly.

    Backends with a native decimal type get ``NUMERIC(precision, scale)``.
    SQLite has none (its NUMERIC is a float), so there the value is stored as
    its canonical fixed-point string, quantized to ``scale``. Aggregation is
    done in Python, never in SQL, so the text storage is never summed.
    """

    impl = Numeric
    cache_ok = True

    def __init__(self, precision: int, scale: int) -> None:
        super().__init__(precision, scale, asdecimal=True)
        self.precision = precision
        self.scale = scale

    def load_dialect_impl(self, dialect: Dialect):
        if dialect.name == "sqlite":
            # sign, decimal point and digits
            return dialect.type_descriptor(String(self.precision + 2))
        return dialect.type_descriptor(Numeric(self.precision, self.scale, asdecimal=True))

    def process_bind_param(self, value, dialect: Dialect):
        if value is None or dialect.name != "sqlite":
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return format(value.quantize(Decimal(1).scaleb(-self.scale)), "f")

    def process_result_value(self, value, dialect: Dialect):
        if value is None or dialect.name != "sqlite":
            return value
        return Decimal(str(value))


# Money columns keep more scale than display precision so converted amounts
# (input * rate) are stored without rounding.
MONEY = ExactDecimal(20, 8)
RATE = ExactDecimal(20, 10)


class Base(DeclarativeBase):
    pass


# ---------------------------
# Owners
# ---------------------------


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    # Reporting currency; all cross-wallet aggregates are normalized into it.
    default_currency: Mapped[str] = mapped_column(
        String(10), nullable=False, server_default=text("'MYR'")
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Wallets
# ---------------------------


class Wallet(Base):
    __tablename__ = "wallets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, server_default=text("'MYR'"))
    # Cached balance. Always equals opening_balance plus the signed sum of the
    # journal rows touching this wallet.
    balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, server_default=text("0"))
    # Moves only on explicit write-offs/rebases that bypass the journal.
    opening_balance: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, server_default=text("0")
    )
    exchange_rate_to_default: Mapped[Decimal] = mapped_column(
        RATE, nullable=False, server_default=text("1")
    )
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_default: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    is_flexible: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.true()
    )
    is_archived: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "type in ('cash','bank_card','digital_wallet','credit_card','investment')",
            name="ck_wallets_type",
        ),
        CheckConstraint("exchange_rate_to_default > 0", name="ck_wallets_rate_positive"),
        # Default-wallet seeding upserts against this.
        UniqueConstraint("owner_id", "type", "name", name="uq_wallets_owner_type_name"),
    )


# ---------------------------
# Categories
# ---------------------------


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_default: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        # Seeding relies on this to stay idempotent under concurrent bootstrap.
        UniqueConstraint("owner_id", "type", "name", name="uq_categories_owner_type_name"),
        CheckConstraint("type in ('expense','income')", name="ck_categories_type"),
    )


# ---------------------------
# Sub-ledgers
# ---------------------------


class SubLedger(Base):
    __tablename__ = "sub_ledgers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    budget_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    include_in_main_analytics: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.true()
    )
    is_archived: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    start_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Loans
# ---------------------------


class Loan(Base):
    __tablename__ = "loans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # lend: I lent money to ``person``; borrow: I borrowed from ``person``.
    direction: Mapped[str] = mapped_column(String(20), nullable=False)
    person: Mapped[str] = mapped_column(String(100), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, server_default=text("'MYR'"))
    # Derived from linked transactions by the reconciliation engine.
    paid_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, server_default=text("0"))
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default=text("'active'")
    )
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    due_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("direction in ('lend','borrow')", name="ck_loans_direction"),
        CheckConstraint("status in ('active','settled','bad_debt')", name="ck_loans_status"),
    )


# ---------------------------
# Core: transactions
# ---------------------------


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    # Always expressed in the source wallet's currency.
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    # What the user typed when it was not in the wallet currency.
    original_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    original_currency: Mapped[str | None] = mapped_column(String(10), nullable=True)
    # 1 original_currency = exchange_rate wallet currency.
    exchange_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False, server_default=text("1"))
    # NULL once the wallet was deleted with its history detached.
    wallet_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("wallets.id", ondelete="SET NULL"), nullable=True
    )
    to_wallet_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("wallets.id", ondelete="SET NULL"), nullable=True
    )
    to_wallet_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    to_exchange_rate: Mapped[Decimal | None] = mapped_column(RATE, nullable=True)
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    sub_ledger_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("sub_ledgers.id", ondelete="SET NULL"), nullable=True
    )
    loan_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("loans.id", ondelete="SET NULL"), nullable=True
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("type in ('expense','income','transfer')", name="ck_tx_type"),
        CheckConstraint("amount > 0", name="ck_tx_amount_positive"),
        CheckConstraint(
            "type = 'transfer' OR (to_wallet_amount IS NULL AND to_exchange_rate IS NULL)",
            name="ck_tx_transfer_fields",
        ),
        Index("ix_transactions_owner_date", "owner_id", "date"),
        Index("ix_transactions_wallet", "wallet_id"),
        Index("ix_transactions_category", "category_id"),
        Index("ix_transactions_loan", "loan_id"),
    )


# ---------------------------
# Planning: budgets, savings goals, recurring templates
# ---------------------------


class Budget(Base):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("month >= 1 AND month <= 12", name="ck_budgets_month"),
    )


class SavingsGoal(Base):
    __tablename__ = "savings_goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    target_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    current_amount: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, server_default=text("0")
    )
    currency: Mapped[str] = mapped_column(String(10), nullable=False, server_default=text("'MYR'"))
    target_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class RecurringTransaction(Base):
    __tablename__ = "recurring_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    wallet_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # 0=Sunday .. 6=Saturday
    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    next_execution_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.true()
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("type in ('expense','income')", name="ck_recurring_type"),
        CheckConstraint(
            "frequency in ('daily','weekly','monthly','yearly')",
            name="ck_recurring_frequency",
        ),
    )


__all__ = [
    "Base",
    "Budget",
    "Category",
    "Loan",
    "RecurringTransaction",
    "SavingsGoal",
    "SubLedger",
    "Transaction",
    "User",
    "Wallet",
]
