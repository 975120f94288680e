"""Multi-wallet personal finance ledger core.

Modules
-------
- ``wallets``: wallet rows, cached balances, default flag, archive/delete.
- ``journal``: transaction create/edit/delete with balance effects.
- ``loans``: loan records and reconciliation from linked transactions.
- ``stats``: period totals, budget spending and asset totals.
- ``seed`` / ``users``: default data for new owners.
- ``categories``, ``subledgers``, ``budgets``, ``recurring``, ``export``.

Every service function takes a caller-owned SQLAlchemy ``Session`` and only
flushes; wrap a logical operation in :func:`ledger_session` to commit it
atomically.
"""

from .errors import (
    Conflict,
    InvalidArgument,
    LedgerError,
    NotFound,
    Unavailable,
    ledger_session,
)
from .journal import (
    create_transaction,
    delete_transaction,
    list_transactions,
    update_transaction,
)
from .loans import recalculate as recalculate_loan
from .models import TransactionFilters, TransactionInput, TransactionPatch
from .seed import initialize_defaults
from .stats import budget_spending, stats_for_period, total_assets
from .wallets import (
    adjust_balance,
    archive_wallet,
    correct_balance,
    create_wallet,
    delete_wallet,
    set_default,
)

__all__ = [
    "Conflict",
    "InvalidArgument",
    "LedgerError",
    "NotFound",
    "TransactionFilters",
    "TransactionInput",
    "TransactionPatch",
    "Unavailable",
    "adjust_balance",
    "archive_wallet",
    "budget_spending",
    "correct_balance",
    "create_transaction",
    "create_wallet",
    "delete_transaction",
    "delete_wallet",
    "initialize_defaults",
    "ledger_session",
    "list_transactions",
    "recalculate_loan",
    "set_default",
    "stats_for_period",
    "total_assets",
    "update_transaction",
]
