from __future__ import annotations

import pytest
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError

from wallet_ledger.errors import (
    InvalidArgument,
    LedgerError,
    NotFound,
    Unavailable,
    invalid_from_validation,
    storage_guard,
)


def test_connectivity_failures_become_retryable_unavailable():
    with pytest.raises(Unavailable) as excinfo, storage_guard():
        raise OperationalError("SELECT 1", {}, Exception("server closed the connection"))
    assert excinfo.value.retryable is True
    assert isinstance(excinfo.value.__cause__, OperationalError)


def test_other_errors_pass_through_unchanged():
    with pytest.raises(IntegrityError), storage_guard():
        raise IntegrityError("INSERT", {}, Exception("duplicate key"))
    with pytest.raises(NotFound), storage_guard():
        raise NotFound("gone")
    with pytest.raises(KeyError), storage_guard():
        raise KeyError("x")


def test_only_unavailable_is_retryable():
    assert Unavailable.retryable is True
    for cls in (NotFound, InvalidArgument, LedgerError):
        assert cls.retryable is False


def test_validation_errors_are_collapsed_into_invalid_argument():
    class Shape(BaseModel):
        amount: int

    with pytest.raises(ValidationError) as excinfo:
        Shape.model_validate({"amount": "lots"})
    err = invalid_from_validation(excinfo.value)
    assert isinstance(err, InvalidArgument)
    assert str(err).startswith("amount:")
