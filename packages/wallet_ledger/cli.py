# ruff: noqa: I001
"""CLI for the ``wallet_ledger`` package.

A Typer console interface over the ledger services. The root callback loads a
local ``.env`` with ``python-dotenv`` (without overriding the environment) and
configures logging before any command runs. Every command runs as one
atomic ``ledger_session`` against ``--database-url`` or ``DATABASE_URL``.
Ledger errors are printed to stderr and turn into exit code 1.
"""

from __future__ import annotations

import datetime as dt
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from typer.models import OptionInfo

from .errors import LedgerError, Unavailable, ledger_session
from .logging_setup import configure_logging

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Multi-wallet ledger: wallets, transactions, loans and statistics. "
        "Loads DATABASE_URL from a local .env before running."
    ),
)

# Module-level option objects (ruff B008: no calls in parameter defaults).
OWNER_OPTION: OptionInfo = typer.Option(..., "--owner", help="Owner (user) id")
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
DATE_FORMATS = ["%Y-%m-%d"]


def _default_currency() -> str:
    return os.getenv("WALLET_LEDGER_DEFAULT_CURRENCY", "MYR")


@contextmanager
def _command_session(database_url: str | None) -> Iterator[Any]:
    """One atomic ledger session; typed failures become exit code 1."""

    try:
        with ledger_session(database_url=database_url) as session:
            yield session
    except Unavailable as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None
    except LedgerError as e:
        err_console.print(f"[red]Error:[/red] {type(e).__name__}: {e}")
        raise typer.Exit(1) from None
    except RuntimeError as e:
        # e.g. DATABASE_URL missing
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def _money(value: Any) -> str:
    from .currency import quantize_money

    return f"{quantize_money(value):,.2f}"


# ---- Commands ---------------------------------------------------------------


@app.command("init-db")
def init_db_cmd(database_url: str | None = DATABASE_URL_OPTION) -> None:
    """Create all tables directly from the ORM models (development databases).

    Production databases are migrated with Alembic from ``libs/db``.
    """

    from ledger_db import metadata
    from ledger_db.client import get_engine

    try:
        engine = get_engine(database_url=database_url)
    except RuntimeError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None
    metadata.create_all(bind=engine)
    console.print(f"[green]Created tables on[/green] {engine.url.render_as_string(hide_password=True)}")


@app.command("seed")
def seed_cmd(
    owner: str = OWNER_OPTION,
    email: str | None = typer.Option(None, help="Email for a new owner."),
    currency: str | None = typer.Option(
        None, help="Default currency (falls back to WALLET_LEDGER_DEFAULT_CURRENCY, then MYR)."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Create or update an owner and insert any missing default data."""

    from .seed import initialize_defaults
    from .users import find_user, upsert_user

    with _command_session(database_url) as session:
        # The env default only applies to owners created here.
        fallback = None if find_user(session, owner) is not None else _default_currency()
        user = upsert_user(session, owner, email=email, default_currency=currency or fallback)
        result = initialize_defaults(session, owner, user.default_currency)
    console.print(
        f"Owner [bold]{owner}[/bold] ready "
        f"({result.wallets_created} wallet(s), {result.categories_created} categor(ies) added)"
    )


@app.command("wallets")
def wallets_cmd(
    owner: str = OWNER_OPTION,
    show_archived: bool = typer.Option(False, "--all", help="Include archived wallets."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """List wallets with balances and the default-currency asset total."""

    from .stats import total_assets
    from .wallets import list_wallets

    with _command_session(database_url) as session:
        rows = list_wallets(session, owner, include_archived=show_archived)
        assets = total_assets(session, owner)

        table = Table(title="Wallets")
        table.add_column("ID", justify="right")
        table.add_column("Name")
        table.add_column("Type")
        table.add_column("Balance", justify="right")
        table.add_column("Flags")
        for w in rows:
            flags = ",".join(
                f for f, on in (("default", w.is_default), ("flexible", w.is_flexible), ("archived", w.is_archived)) if on
            )
            table.add_row(str(w.id), w.name, w.type, f"{_money(w.balance)} {w.currency}", flags)
    console.print(table)
    console.print(f"Total assets: {_money(assets.total)} (flexible {_money(assets.flexible)})")


@app.command("stats")
def stats_cmd(
    owner: str = OWNER_OPTION,
    start: dt.datetime = typer.Option(..., formats=DATE_FORMATS, help="First day (YYYY-MM-DD)."),
    end: dt.datetime = typer.Option(..., formats=DATE_FORMATS, help="Last day (YYYY-MM-DD)."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Income/expense totals and the expense breakdown for a date range."""

    from .stats import stats_for_period

    with _command_session(database_url) as session:
        result = stats_for_period(session, owner, start.date(), end.date())

    console.print(f"Income:  {_money(result.total_income)}")
    console.print(f"Expense: {_money(result.total_expense)}")
    console.print(f"Net:     {_money(result.net)}")
    if result.category_breakdown:
        table = Table(title="Expenses by category")
        table.add_column("Category")
        table.add_column("Total", justify="right")
        for item in result.category_breakdown:
            table.add_row(item.name, _money(item.total))
        console.print(table)


@app.command("budgets")
def budgets_cmd(
    owner: str = OWNER_OPTION,
    month: int = typer.Option(..., min=1, max=12),
    year: int = typer.Option(...),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Budget spending for one month."""

    from .stats import budget_spending

    with _command_session(database_url) as session:
        rows = budget_spending(session, owner, month, year)

    if not rows:
        console.print(f"No budgets for {year}-{month:02d}.")
        return
    table = Table(title=f"Budgets {year}-{month:02d}")
    table.add_column("Category")
    table.add_column("Budget", justify="right")
    table.add_column("Spent", justify="right")
    table.add_column("%", justify="right")
    for b in rows:
        spent = _money(b.spent)
        table.add_row(
            b.category_name,
            _money(b.amount),
            f"[red]{spent}[/red]" if b.overspent else spent,
            f"{b.percent}",
        )
    console.print(table)


@app.command("recalc-loan")
def recalc_loan_cmd(
    owner: str = OWNER_OPTION,
    loan_id: int = typer.Option(..., "--loan-id"),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Recompute a loan's paid amount and status from its transactions."""

    from .loans import get_loan, recalculate

    with _command_session(database_url) as session:
        get_loan(session, loan_id, owner)
        loan = recalculate(session, loan_id, owner)
    console.print(
        f"Loan {loan.id} ({loan.direction} {loan.person}): "
        f"paid {_money(loan.paid_amount)} of {_money(loan.total_amount)} {loan.currency}, {loan.status}"
    )


@app.command("run-recurring")
def run_recurring_cmd(
    owner: str = OWNER_OPTION,
    as_of: dt.datetime | None = typer.Option(
        None, "--as-of", formats=DATE_FORMATS, help="Post occurrences up to this day (default today)."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Post due recurring transactions."""

    from .recurring import run_due

    day = as_of.date() if as_of is not None else dt.date.today()
    with _command_session(database_url) as session:
        posted = run_due(session, owner, day)
    console.print(f"Posted {len(posted)} recurring transaction(s) through {day.isoformat()}.")


@app.command("export")
def export_cmd(
    owner: str = OWNER_OPTION,
    out: Path = typer.Option(..., "--out", dir_okay=False, help="Destination CSV file."),
    start: dt.datetime | None = typer.Option(None, formats=DATE_FORMATS),
    end: dt.datetime | None = typer.Option(None, formats=DATE_FORMATS),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Export transactions to CSV."""

    from .export import export_csv
    from .models import TransactionFilters

    filters = TransactionFilters(
        start_date=start.date() if start else None,
        end_date=end.date() if end else None,
    )
    # Rows go to a sibling temp file; ``out`` is replaced only after the query
    # and the write both succeed.
    tmp: Path | None = None
    try:
        with _command_session(database_url) as session, tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="",
            dir=out.parent,
            prefix=f".{out.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp = Path(f.name)
            count = export_csv(session, owner, f, filters)
        os.replace(tmp, out)
    except OSError as e:
        err_console.print(f"[red]Error:[/red] cannot write {out}: {e}")
        raise typer.Exit(1) from None
    finally:
        if tmp is not None and tmp.exists():
            tmp.unlink()
    console.print(f"Wrote {count} transaction(s) to {out}")


@app.command("verify-balances")
def verify_balances_cmd(
    owner: str = OWNER_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Compare cached wallet balances with a replay of the journal.

    Exits with status 1 when any wallet drifted.
    """

    from .wallets import balance_drift, list_wallets

    drifted: list[tuple[str, Any]] = []
    with _command_session(database_url) as session:
        for w in list_wallets(session, owner):
            drift = balance_drift(session, w.id, owner)
            if drift != 0:
                drifted.append((w.name, drift))
    if drifted:
        for name, drift in drifted:
            err_console.print(f"[red]Drift[/red] {name}: {drift}")
        raise typer.Exit(1)
    console.print("[green]All balances match the journal.[/green]")


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    log_level: str | None = typer.Option(
        None, "--log-level", help="Log level (falls back to WALLET_LEDGER_LOG_LEVEL, then INFO)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


def main() -> None:  # pragma: no cover - console script shim
    app()


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m wallet_ledger.cli`
    main()
