"""CSV export of journal rows.

The file starts with a UTF-8 byte order mark so spreadsheet tools pick the
right encoding, and every field is quoted. Amounts are written with two
decimal places in the wallet currency.
"""

from __future__ import annotations

import csv
from typing import IO

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_db.models.ledger import Category, Wallet

from .currency import quantize_money
from .journal import list_transactions
from .models import TransactionFilters

HEADER = (
    "Date",
    "Type",
    "Amount",
    "Currency",
    "Category",
    "Wallet",
    "To Wallet",
    "Description",
)

BOM = "\ufeff"


def export_csv(
    session: Session,
    owner_id: str,
    out: IO[str],
    filters: TransactionFilters | None = None,
) -> int:
    """Write the owner's (filtered) transactions to ``out``; return the row count."""

    rows = list_transactions(session, owner_id, filters)
    wallets = {
        w.id: w.name
        for w in session.execute(select(Wallet).where(Wallet.owner_id == owner_id)).scalars()
    }
    categories = {
        c.id: c.name
        for c in session.execute(select(Category).where(Category.owner_id == owner_id)).scalars()
    }

    out.write(BOM)
    writer = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(HEADER)
    for tx in rows:
        writer.writerow(
            (
                tx.date.isoformat(),
                tx.type,
                f"{quantize_money(tx.amount):.2f}",
                tx.currency,
                categories.get(tx.category_id, "") if tx.category_id is not None else "",
                wallets.get(tx.wallet_id, "") if tx.wallet_id is not None else "",
                wallets.get(tx.to_wallet_id, "") if tx.to_wallet_id is not None else "",
                tx.description or "",
            )
        )
    return len(rows)


__all__ = ["HEADER", "export_csv"]
