"""Input and result shapes for ``wallet_ledger``.

Service inputs that arrive from an outer layer are pydantic models so field
coercion and type-specific checks happen before any row is touched. Results
that only flow outward are plain frozen dataclasses.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

TransactionType = Literal["expense", "income", "transfer"]
WalletType = Literal["cash", "bank_card", "digital_wallet", "credit_card", "investment"]
LoanDirection = Literal["lend", "borrow"]
LoanStatus = Literal["active", "settled", "bad_debt"]

WALLET_TYPES: tuple[str, ...] = ("cash", "bank_card", "digital_wallet", "credit_card", "investment")
TRANSACTION_TYPES: tuple[str, ...] = ("expense", "income", "transfer")

_TRANSFER_ONLY = ("to_wallet_id", "to_wallet_amount", "to_exchange_rate")


# ---------------------------------------------------------------------------
# Transaction inputs
# ---------------------------------------------------------------------------


class TransactionInput(BaseModel):
    """A transaction as the user entered it.

    ``amount`` is in ``currency`` (the input currency). When ``currency`` is
    omitted the wallet currency is assumed. ``exchange_rate`` means
    ``1 input currency = exchange_rate wallet currency`` and is required only
    when the two differ. ``to_wallet_amount`` is the credited amount in the
    destination wallet's currency for cross-currency transfers.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    type: TransactionType
    amount: Decimal
    wallet_id: int
    date: dt.date
    currency: str | None = None
    exchange_rate: Decimal | None = None
    to_wallet_id: int | None = None
    to_wallet_amount: Decimal | None = None
    to_exchange_rate: Decimal | None = None
    category_id: int | None = None
    sub_ledger_id: int | None = None
    loan_id: int | None = None
    description: str | None = None

    @field_validator("amount")
    @classmethod
    def _amount_positive(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v <= 0:
            raise ValueError("amount must be greater than zero")
        return v

    @field_validator("exchange_rate", "to_wallet_amount", "to_exchange_rate")
    @classmethod
    def _optional_positive(cls, v: Decimal | None) -> Decimal | None:
        if v is None:
            return None
        if not v.is_finite() or v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str | None) -> str | None:
        if v is None or not v:
            return None
        return v.upper()

    @field_validator("description")
    @classmethod
    def _blank_description(cls, v: str | None) -> str | None:
        return v or None

    @model_validator(mode="after")
    def _type_specific_fields(self) -> TransactionInput:
        if self.type == "transfer":
            if self.to_wallet_id is None:
                raise ValueError("transfer requires a destination wallet")
            if self.to_wallet_id == self.wallet_id:
                raise ValueError("cannot transfer to the same wallet")
        else:
            present = [name for name in _TRANSFER_ONLY if getattr(self, name) is not None]
            if present:
                raise ValueError(f"{self.type} does not accept {', '.join(present)}")
        return self


class TransactionPatch(BaseModel):
    """Partial update; only fields explicitly set are applied."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    type: TransactionType | None = None
    amount: Decimal | None = None
    wallet_id: int | None = None
    date: dt.date | None = None
    currency: str | None = None
    exchange_rate: Decimal | None = None
    to_wallet_id: int | None = None
    to_wallet_amount: Decimal | None = None
    to_exchange_rate: Decimal | None = None
    category_id: int | None = None
    sub_ledger_id: int | None = None
    loan_id: int | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class TransactionFilters:
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    category_id: int | None = None
    wallet_id: int | None = None
    type: str | None = None
    sub_ledger_id: int | None = None
    loan_id: int | None = None
    search: str | None = None
    limit: int | None = None
    offset: int = 0


# ---------------------------------------------------------------------------
# Aggregation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CategoryTotal:
    category_id: int
    name: str
    color: str | None
    total: Decimal


@dataclass(frozen=True, slots=True)
class TransactionStats:
    """Income/expense totals in the owner's default currency."""

    total_income: Decimal
    total_expense: Decimal
    category_breakdown: list[CategoryTotal] = field(default_factory=list)

    @property
    def net(self) -> Decimal:
        return self.total_income - self.total_expense


@dataclass(frozen=True, slots=True)
class BudgetSpending:
    budget_id: int
    category_id: int
    category_name: str
    category_color: str | None
    month: int
    year: int
    amount: Decimal
    spent: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.amount - self.spent

    @property
    def percent(self) -> Decimal:
        if self.amount <= 0:
            return Decimal("0")
        return (self.spent / self.amount * 100).quantize(Decimal("0.01"))

    @property
    def overspent(self) -> bool:
        return self.spent > self.amount


@dataclass(frozen=True, slots=True)
class AssetTotals:
    total: Decimal
    flexible: Decimal


@dataclass(frozen=True, slots=True)
class SubLedgerSummary:
    sub_ledger_id: int
    total_income: Decimal
    total_expense: Decimal
    transaction_count: int


__all__ = [
    "AssetTotals",
    "BudgetSpending",
    "CategoryTotal",
    "LoanDirection",
    "LoanStatus",
    "SubLedgerSummary",
    "TRANSACTION_TYPES",
    "TransactionFilters",
    "TransactionInput",
    "TransactionPatch",
    "TransactionStats",
    "TransactionType",
    "WALLET_TYPES",
    "WalletType",
]
