"""Search maintenance commands."""

from __future__ import annotations

import asyncio
import json
import signal
from datetime import datetime
from typing import List, Optional

import typer
from rich.console import Console

from fiscal_ledger.search.batch_processor import SearchBatchProcessor
from fiscal_ledger.search.client import close_search_client, get_search_client
from fiscal_ledger.search.errors import SearchError
from fiscal_ledger.search.search import global_search
from fiscal_ledger.search.sync import create_index, parse_indexes, remove_index, sync_index
from fiscal_ledger.search.sync_postgres import full_account_re_index, start_postgres_sync, stop_postgres_sync

app = typer.Typer(help="Search index maintenance", add_completion=False)
console = Console()


def check_search_available() -> None:
    if get_search_client() is None:
        console.print("[red]Error:[/red] OpenSearch is not configured")
        raise typer.Exit(1)


def _parse_indexes(values: Optional[List[str]]):
    try:
        return parse_indexes(values)
    except SearchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


async def _with_client(coroutine):
    try:
        return await coroutine
    finally:
        await close_search_client()


@app.command()
def create(indexes: Optional[List[str]] = typer.Argument(None, help="Only create these indexes")) -> None:
    """Create indices (must not exist)."""
    check_search_available()
    selected = _parse_indexes(indexes)

    async def _create():
        for index in selected:
            console.print(f"Creating index {index.value}")
            await create_index(index)

    asyncio.run(_with_client(_create()))
    console.print("[green]Create completed![/green]")


@app.command()
def drop(
    indexes: Optional[List[str]] = typer.Argument(None, help="Only drop these indexes"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Drop indices."""
    check_search_available()
    selected = _parse_indexes(indexes)
    if not yes:
        typer.confirm(
            "WARNING: This will delete all existing data in the indices. You should make sure that "
            "the background synchronization job is disabled. Are you sure you want to continue?",
            abort=True,
        )

    async def _drop():
        for index in selected:
            console.print(f"Dropping index {index.value}")
            await remove_index(index, throw_if_missing=False)

    asyncio.run(_with_client(_drop()))
    console.print("[green]Drop completed![/green]")


@app.command()
def sync(
    from_date: str = typer.Argument(..., help='Only sync rows created/deleted after this date, or "all"'),
    indexes: Optional[List[str]] = typer.Argument(None, help="Only sync these indexes"),
) -> None:
    """Sync indexes from the database."""
    check_search_available()
    parsed_date = None
    if from_date != "all":
        try:
            parsed_date = datetime.fromisoformat(from_date)
        except ValueError:
            console.print("[red]Error:[/red] Invalid date")
            raise typer.Exit(1)
    selected = _parse_indexes(indexes)

    async def _sync():
        total = 0
        for index in selected:
            total += await sync_index(index, from_date=parsed_date)
        return total

    total = asyncio.run(_with_client(_sync()))
    console.print(f"[green]Sync completed![/green] {total} documents indexed")


@app.command("reindex-account")
def reindex_account(collective_id: int = typer.Argument(..., help="Account to re-index")) -> None:
    """Re-index every entry related to an account."""
    check_search_available()

    async def _reindex():
        processor = SearchBatchProcessor.get_instance()
        processor.start()
        full_account_re_index(collective_id)
        await processor.flush_and_close()

    asyncio.run(_with_client(_reindex()))
    console.print(f"[green]Account #{collective_id} re-indexed[/green]")


@app.command()
def query(
    term: str = typer.Argument(..., help="Search term"),
    index: Optional[List[str]] = typer.Option(None, "--index", "-i", help="Indexes to search"),
    account_id: Optional[int] = typer.Option(None, "--account-id"),
    host_id: Optional[int] = typer.Option(None, "--host-id"),
    limit: int = typer.Option(50, "--limit", "-l"),
) -> None:
    """Run a search query and print the hits by index."""
    check_search_available()
    selected = _parse_indexes(index)
    results = asyncio.run(
        _with_client(global_search(term, selected, account_id=account_id, host_id=host_id, limit=limit))
    )
    console.print_json(json.dumps(results, default=str))


@app.command("sync-job")
def sync_job() -> None:
    """Run the Postgres -> OpenSearch sync job until interrupted."""
    check_search_available()

    async def _run():
        await start_postgres_sync()
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        console.print("Sync job running, press Ctrl+C to stop")
        await stop.wait()
        await stop_postgres_sync()

    asyncio.run(_with_client(_run()))
