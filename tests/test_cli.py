from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest
from ledger_db.client import dispose_engines, session_scope
from typer.testing import CliRunner

import wallet_ledger.cli as cli
from wallet_ledger.errors import Unavailable
from wallet_ledger.journal import create_transaction
from wallet_ledger.loans import create_loan
from wallet_ledger.wallets import adjust_balance, create_wallet, list_wallets

runner = CliRunner()


@pytest.fixture(autouse=True)
def _quiet_cli(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # No stray .env from the working tree, and no handler bound to the runner's streams.
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "configure_logging", lambda *a, **k: None)


def test_init_db_creates_schema(tmp_path):
    url = f"sqlite+pysqlite:///{tmp_path / 'fresh.sqlite3'}"
    try:
        result = runner.invoke(cli.app, ["init-db", "--database-url", url])
    finally:
        dispose_engines()
    assert result.exit_code == 0, result.output
    assert (tmp_path / "fresh.sqlite3").exists()


def test_seed_then_list_wallets(db_url):
    result = runner.invoke(cli.app, ["seed", "--owner", "cli-user", "--currency", "SGD"])
    assert result.exit_code == 0, result.output
    assert "cli-user" in result.stdout

    again = runner.invoke(cli.app, ["seed", "--owner", "cli-user"])
    assert again.exit_code == 0, again.output
    assert "0 wallet(s)" in again.stdout

    listing = runner.invoke(cli.app, ["wallets", "--owner", "cli-user"])
    assert listing.exit_code == 0, listing.output
    assert "Cash" in listing.stdout
    assert "Total assets: 0.00" in listing.stdout


def test_stats_and_export(db_url, owner, tmp_path):
    seeded = runner.invoke(cli.app, ["seed", "--owner", owner])
    assert seeded.exit_code == 0, seeded.output
    with session_scope(database_url=db_url) as s:
        cash = list_wallets(s, owner)[0]
        create_transaction(
            s, owner, {"type": "income", "amount": "250", "wallet_id": cash.id, "date": dt.date(2024, 1, 5)}
        )

    stats = runner.invoke(cli.app, ["stats", "--owner", owner, "--start", "2024-01-01", "--end", "2024-01-31"])
    assert stats.exit_code == 0, stats.output
    assert "Income:  250.00" in stats.stdout

    out = tmp_path / "export.csv"
    exported = runner.invoke(cli.app, ["export", "--owner", owner, "--out", str(out)])
    assert exported.exit_code == 0, exported.output
    assert out.read_text(encoding="utf-8").count("\n") == 2


def test_failed_export_leaves_existing_file_untouched(db_url, owner, tmp_path, monkeypatch):
    import wallet_ledger.export as export

    def broken_export(session, owner_id, f, filters=None):
        f.write("partial")
        raise Unavailable("storage unreachable")

    monkeypatch.setattr(export, "export_csv", broken_export)
    out = tmp_path / "export.csv"
    out.write_text("previous export", encoding="utf-8")

    result = runner.invoke(cli.app, ["export", "--owner", owner, "--out", str(out)])

    assert result.exit_code == 1
    assert out.read_text(encoding="utf-8") == "previous export"
    assert not [p for p in tmp_path.iterdir() if p.name.startswith(".export.csv.")]


def test_verify_balances_reports_drift(db_url, owner):
    with session_scope(database_url=db_url) as s:
        wallet = create_wallet(s, owner, name="Cash", type="cash")
    ok = runner.invoke(cli.app, ["verify-balances", "--owner", owner])
    assert ok.exit_code == 0, ok.output

    with session_scope(database_url=db_url) as s:
        adjust_balance(s, wallet.id, owner, "5")
    drifted = runner.invoke(cli.app, ["verify-balances", "--owner", owner])
    assert drifted.exit_code == 1


def test_recalc_loan_and_errors(db_url, owner):
    with session_scope(database_url=db_url) as s:
        loan_id = create_loan(
            s,
            owner,
            direction="lend",
            person="Ali",
            total_amount="100",
            start_date=dt.date(2024, 1, 1),
        ).id

    result = runner.invoke(cli.app, ["recalc-loan", "--owner", owner, "--loan-id", str(loan_id)])
    assert result.exit_code == 0, result.output
    assert "active" in result.stdout

    missing = runner.invoke(cli.app, ["recalc-loan", "--owner", owner, "--loan-id", "999"])
    assert missing.exit_code == 1


def test_budgets_and_recurring_with_nothing_due(db_url, owner):
    budgets = runner.invoke(cli.app, ["budgets", "--owner", owner, "--month", "2", "--year", "2024"])
    assert budgets.exit_code == 0, budgets.output
    assert "No budgets" in budgets.stdout

    recurring = runner.invoke(cli.app, ["run-recurring", "--owner", owner, "--as-of", "2024-02-01"])
    assert recurring.exit_code == 0, recurring.output
    assert "Posted 0" in recurring.stdout


def test_missing_database_url_is_an_error(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    result = runner.invoke(cli.app, ["wallets", "--owner", "x"])
    assert result.exit_code == 1
