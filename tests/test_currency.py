from __future__ import annotations

from decimal import Decimal

import pytest

from wallet_ledger.currency import (
    convert,
    currency_symbol,
    fit_storage,
    invert,
    quantize_money,
    to_decimal,
    validate_currency,
)
from wallet_ledger.errors import InvalidArgument


def test_convert_is_exact_multiplication():
    assert convert(Decimal("100"), Decimal("0.21")) == Decimal("21.00")
    assert convert(Decimal("10.10"), Decimal("3")) == Decimal("30.30")


def test_invert_round_trips_a_rate():
    rate = Decimal("4")
    assert invert(rate) == Decimal("0.25")
    with pytest.raises(InvalidArgument):
        invert(Decimal("0"))


def test_to_decimal_parses_floats_through_str():
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal("12.50") == Decimal("12.50")
    assert to_decimal(3) == Decimal("3")


@pytest.mark.parametrize("bad", [None, True, "abc", "NaN", "Infinity"])
def test_to_decimal_rejects_non_numbers(bad):
    with pytest.raises(InvalidArgument):
        to_decimal(bad)


def test_quantize_money_rounds_half_up():
    assert quantize_money(Decimal("99.995")) == Decimal("100.00")
    assert quantize_money(Decimal("1.234")) == Decimal("1.23")


def test_fit_storage_keeps_eight_places():
    assert fit_storage(Decimal("1") / Decimal("3")) == Decimal("0.33333333")


def test_validate_currency_normalizes_and_rejects_unknown():
    assert validate_currency(" usd ") == "USD"
    with pytest.raises(InvalidArgument):
        validate_currency("XYZ")
    assert currency_symbol("MYR") == "RM"
    assert currency_symbol("XYZ") == "XYZ"
