"""Shared SQLAlchemy models registry for the ledger database.

Currently includes the ledger domain models used by ``wallet_ledger``.
"""

from .ledger import (
    Base,
    Budget,
    Category,
    Loan,
    RecurringTransaction,
    SavingsGoal,
    SubLedger,
    Transaction,
    User,
    Wallet,
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
