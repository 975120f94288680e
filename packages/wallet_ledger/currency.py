"""Exact-decimal currency helpers.

Rate convention everywhere in the ledger: ``1 source = rate target``, so
``convert(amount, rate)`` moves an amount from source into target units and
``invert(rate)`` flips the direction. Nothing here rounds except
:func:`quantize_money`, used only where two decimal places are part of the
contract (loan paid amounts, CSV export), and :func:`fit_storage`, applied to
converted amounts before they are stored.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .errors import InvalidArgument

# (code, symbol)
SUPPORTED_CURRENCIES: dict[str, str] = {
    "MYR": "RM",
    "CNY": "¥",
    "USD": "$",
    "SGD": "S$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "HKD": "HK$",
    "TWD": "NT$",
    "THB": "฿",
}

CENT = Decimal("0.01")
# Scale of the MONEY columns.
STORAGE_QUANTUM = Decimal("0.00000001")
ZERO = Decimal("0")
ONE = Decimal("1")


def to_decimal(value: Any, *, field: str = "amount") -> Decimal:
    """Parse ``value`` into a finite ``Decimal``.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")`` rather than
    its binary expansion.
    """

    if isinstance(value, bool) or value is None:
        raise InvalidArgument(f"{field} must be a number")
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            d = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise InvalidArgument(f"{field} must be a number, got {value!r}") from None
    if not d.is_finite():
        raise InvalidArgument(f"{field} must be finite")
    return d


def positive(value: Any, *, field: str = "amount") -> Decimal:
    d = to_decimal(value, field=field)
    if d <= ZERO:
        raise InvalidArgument(f"{field} must be greater than zero")
    return d


def convert(amount: Decimal, rate: Decimal) -> Decimal:
    """Return ``amount * rate`` without rounding."""

    return to_decimal(amount) * to_decimal(rate, field="rate")


def invert(rate: Decimal) -> Decimal:
    """Return ``1 / rate`` for a positive rate."""

    return ONE / positive(rate, field="rate")


def quantize_money(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def fit_storage(value: Decimal) -> Decimal:
    """Round a computed amount to the stored scale so cached and replayed sums agree."""

    return to_decimal(value).quantize(STORAGE_QUANTUM, rounding=ROUND_HALF_UP)


def validate_currency(code: str | None) -> str:
    """Normalize ``code`` to upper case and check it is supported."""

    norm = (code or "").strip().upper()
    if norm not in SUPPORTED_CURRENCIES:
        raise InvalidArgument(f"Unsupported currency: {code!r}")
    return norm


def currency_symbol(code: str) -> str:
    return SUPPORTED_CURRENCIES.get(code, code)


__all__ = [
    "CENT",
    "ONE",
    "STORAGE_QUANTUM",
    "SUPPORTED_CURRENCIES",
    "ZERO",
    "convert",
    "currency_symbol",
    "fit_storage",
    "invert",
    "positive",
    "quantize_money",
    "to_decimal",
    "validate_currency",
]
