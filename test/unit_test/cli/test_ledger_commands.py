"""Unit tests for the ledger maintenance commands."""

from datetime import datetime
from unittest.mock import AsyncMock, patch

from typer.testing import CliRunner

from fiscal_ledger.cli.ledger import SplitAction, SplitMigrationName, run_settle_hosts, run_split
from fiscal_ledger.cli.main import app
from fiscal_ledger.core.database.base import utc_now
from fiscal_ledger.core.database.entities import Transaction
from fiscal_ledger.ledger.migrations import MigrationResult
from fiscal_ledger.ledger.settlements import HostSettlementReport

runner = CliRunner()


async def _legacy_host_fee_pair(session):
    common = {
        "kind": "CONTRIBUTION",
        "transaction_group": "legacy-group",
        "currency": "USD",
        "host_currency": "USD",
        "created_at": datetime(2022, 1, 1),
        "host_fee_in_host_currency": -500,
    }
    session.add(
        Transaction(type="CREDIT", collective_id=20, from_collective_id=30, host_collective_id=10, amount=10000,
                    amount_in_host_currency=10000, net_amount_in_collective_currency=9500, **common)
    )
    session.add(
        Transaction(type="DEBIT", collective_id=30, from_collective_id=20, amount=-9500,
                    amount_in_host_currency=-9500, net_amount_in_collective_currency=-10000, **common)
    )
    await session.commit()


class TestRunSplit:
    async def test_check_migrate_and_rollback(self, session, session_maker, accounts):
        """Test a full migrate/rollback cycle, each command in its own session."""
        await _legacy_host_fee_pair(session)
        name = SplitMigrationName.HOST_FEES

        assert await run_split(name, SplitAction.CHECK, session_maker=session_maker) == 1

        result = await run_split(name, SplitAction.MIGRATE, timestamp="1700000000000", session_maker=session_maker)
        assert result.migrated == 1
        assert await run_split(name, SplitAction.CHECK, session_maker=session_maker) == 0

        restored = await run_split(name, SplitAction.ROLLBACK, timestamp="ALL", session_maker=session_maker)
        assert restored == 2
        assert await run_split(name, SplitAction.CHECK, session_maker=session_maker) == 1

    async def test_dry_run_writes_nothing(self, session, session_maker, accounts):
        await _legacy_host_fee_pair(session)

        result = await run_split(
            SplitMigrationName.HOST_FEES, SplitAction.MIGRATE, dry_run=True, session_maker=session_maker
        )

        assert result.dry_run is True
        assert result.pairs == 1
        assert await run_split(SplitMigrationName.HOST_FEES, SplitAction.CHECK, session_maker=session_maker) == 1


class TestRunSettleHosts:
    async def test_settles_given_month(self, ledger, session, session_maker, accounts, contribution_payload):
        await ledger.record_contribution(contribution_payload(amount=11000, platform_tip=1000))
        await session.commit()

        reports = await run_settle_hosts(utc_now(), dry_run=True, session_maker=session_maker)

        (report,) = reports
        assert report.host_id == 10
        assert report.total_amount == 1000

    async def test_other_month(self, ledger, session, session_maker, accounts, contribution_payload):
        await ledger.record_contribution(contribution_payload(amount=11000, platform_tip=1000))
        await session.commit()

        assert await run_settle_hosts(datetime(2020, 12, 1), session_maker=session_maker) == []


class TestSplitCommand:
    def test_rollback_requires_timestamp(self):
        result = runner.invoke(app, ["ledger", "split", "host-fees", "rollback"])
        assert result.exit_code == 1
        assert "--timestamp is required" in result.output

    def test_migrate_summary(self):
        summary = MigrationResult(migration="host-fees", timestamp="1700000000000", pairs=3, migrated=2, skipped=1)
        with patch("fiscal_ledger.cli.ledger.run_split", new=AsyncMock(return_value=summary)) as mock_run:
            result = runner.invoke(app, ["ledger", "split", "host-fees", "migrate", "--start-date", "2022-01-01"])

        assert result.exit_code == 0
        assert "2/3 pairs migrated, 1 skipped" in result.output
        args = mock_run.await_args.args
        assert args[0] == SplitMigrationName.HOST_FEES
        assert args[4] == datetime(2022, 1, 1)

    def test_check_all_good(self):
        with patch("fiscal_ledger.cli.ledger.run_split", new=AsyncMock(return_value=0)):
            result = runner.invoke(app, ["ledger", "split", "taxes", "check"])

        assert result.exit_code == 0
        assert "All good with taxes!" in result.output

    def test_unknown_migration(self):
        result = runner.invoke(app, ["ledger", "split", "tips", "check"])
        assert result.exit_code == 2


def test_settle_hosts_command():
    report = HostSettlementReport(
        host_id=10, host_name="Fiscal Host", currency="USD", total_amount=1234, expense_id=7
    )
    with patch("fiscal_ledger.cli.ledger.run_settle_hosts", new=AsyncMock(return_value=[report])) as mock_run:
        result = runner.invoke(app, ["ledger", "settle-hosts", "--month", "2024-02", "--dry-run"])

    assert result.exit_code == 0
    assert "Fiscal Host (#10)" in result.output
    assert "12.34" in result.output
    month, host_id, dry_run = mock_run.await_args.args
    assert month == datetime(2024, 2, 1)
    assert dry_run is True


def test_serve_uses_configured_address():
    with patch("fiscal_ledger.cli.main.uvicorn.run") as mock_run:
        result = runner.invoke(app, ["serve", "--port", "9000"])

    assert result.exit_code == 0
    args, kwargs = mock_run.call_args
    assert args == ("fiscal_ledger.server.main:app",)
    assert kwargs["host"] == "0.0.0.0"
    assert kwargs["port"] == 9000
