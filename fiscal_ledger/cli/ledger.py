"""Ledger maintenance commands: split migrations and host settlement."""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from fiscal_ledger.core.database.repositories import build_ledger_repos
from fiscal_ledger.ledger.double_entry import LedgerService
from fiscal_ledger.ledger.fx import FxRateProvider
from fiscal_ledger.ledger.migrations import MIGRATIONS
from fiscal_ledger.ledger.settlements import HostSettlementService, settlement_period
from fiscal_ledger.server.core.config import settings

app = typer.Typer(help="Ledger maintenance", add_completion=False)
console = Console()


class SplitMigrationName(str, Enum):
    HOST_FEES = "host-fees"
    PAYMENT_PROCESSOR_FEES = "payment-processor-fees"
    TAXES = "taxes"


class SplitAction(str, Enum):
    MIGRATE = "migrate"
    ROLLBACK = "rollback"
    CHECK = "check"


def _session_maker():
    from fiscal_ledger.core.database.session import async_session_maker

    return async_session_maker


def _build_ledger(session) -> LedgerService:
    platform = settings.platform
    fx = FxRateProvider(
        settings.fx_rates_api_url,
        platform_collective_id=platform.collective_id,
        platform_currency=platform.currency,
    )
    return LedgerService(build_ledger_repos(session), fx, platform)


async def run_split(
    name: SplitMigrationName,
    action: SplitAction,
    timestamp: Optional[str] = None,
    dry_run: bool = False,
    start_date: Optional[datetime] = None,
    session_maker=None,
):
    """Run one split migration command inside a single database transaction."""
    session_maker = session_maker or _session_maker()
    async with session_maker() as session:
        ledger = _build_ledger(session)
        migration = MIGRATIONS[name.value](ledger, start_date=start_date)
        try:
            if action == SplitAction.CHECK:
                return await migration.check()
            if action == SplitAction.ROLLBACK:
                result = await migration.rollback(timestamp)
            else:
                result = await migration.migrate(dry_run=dry_run, timestamp=timestamp)
            await session.commit()
            return result
        except Exception:
            await session.rollback()
            raise
        finally:
            await ledger.fx.aclose()


@app.command()
def split(
    name: SplitMigrationName = typer.Argument(..., help="Column to split into separate pairs"),
    action: SplitAction = typer.Argument(..., help="migrate, rollback or check"),
    timestamp: Optional[str] = typer.Option(
        None, "--timestamp", "-t", help='Migration timestamp to rollback, or "ALL"'
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only count the pairs to migrate"),
    start_date: Optional[datetime] = typer.Option(
        None, "--start-date", formats=["%Y-%m-%d"], help="Only rows created after this date"
    ),
) -> None:
    """Split legacy fee columns into their own transaction pairs."""
    if action == SplitAction.ROLLBACK and not timestamp:
        console.print('[red]Error:[/red] --timestamp is required to rollback. Pass "ALL" to rollback everything')
        raise typer.Exit(1)

    result = asyncio.run(run_split(name, action, timestamp, dry_run, start_date))

    if action == SplitAction.CHECK:
        if result:
            console.print(f"{result} transaction pair(s) to migrate")
        else:
            console.print(f"[green]All good with {name.value}![/green]")
    elif action == SplitAction.ROLLBACK:
        console.print(f"[green]Rolled back[/green] {result} transaction(s)")
    else:
        console.print(
            f"Migration [bold]{result.timestamp}[/bold]: {result.migrated}/{result.pairs} pairs migrated, "
            f"{result.skipped} skipped" + (" (dry run)" if result.dry_run else "")
        )


async def run_settle_hosts(
    month: Optional[datetime] = None,
    host_id: Optional[int] = None,
    dry_run: bool = False,
    session_maker=None,
):
    session_maker = session_maker or _session_maker()
    if month is not None:
        # Settle the given month: the period helper looks at the month before its base date
        base_date = datetime(month.year + month.month // 12, month.month % 12 + 1, 1)
    else:
        base_date = None
    start, end = settlement_period(base_date)

    async with session_maker() as session:
        service = HostSettlementService(build_ledger_repos(session), settings.platform)
        reports = await service.run(start, end, host_id=host_id, dry_run=dry_run)
        if not dry_run:
            await session.commit()
    return reports


@app.command("settle-hosts")
def settle_hosts(
    month: Optional[datetime] = typer.Option(
        None, "--month", "-m", formats=["%Y-%m"], help="Month to settle, the previous month by default"
    ),
    host_id: Optional[int] = typer.Option(None, "--host-id", help="Only settle this host"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Compute the invoices without writing them"),
) -> None:
    """Invoice hosts for the platform tips and host fee shares they owe."""
    reports = asyncio.run(run_settle_hosts(month, host_id, dry_run))

    table = Table(title="Host settlement" + (" (dry run)" if dry_run else ""))
    table.add_column("Host")
    table.add_column("Total", justify="right")
    table.add_column("Currency")
    table.add_column("Expense")
    table.add_column("Status")
    for report in reports:
        status = f"skipped: {report.reason}" if report.skipped else "invoiced"
        table.add_row(
            f"{report.host_name} (#{report.host_id})",
            f"{report.total_amount / 100:.2f}",
            report.currency,
            str(report.expense_id or "-"),
            status,
        )
    console.print(table)
