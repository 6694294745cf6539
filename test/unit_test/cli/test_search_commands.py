"""Unit tests for the search maintenance commands."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from fiscal_ledger.cli.main import app
from fiscal_ledger.search.common import IndexName

runner = CliRunner()

CLI_MODULE = "fiscal_ledger.cli.search"


@pytest.fixture
def configured():
    """Pretend OpenSearch is configured and never open a real client."""
    with (
        patch(f"{CLI_MODULE}.get_search_client", return_value=MagicMock()),
        patch(f"{CLI_MODULE}.close_search_client", new_callable=AsyncMock) as close,
    ):
        yield close


def test_not_configured():
    result = runner.invoke(app, ["search", "create"])
    assert result.exit_code == 1
    assert "OpenSearch is not configured" in result.output


class TestIndexCommands:
    def test_create_selected_indexes(self, configured):
        with patch(f"{CLI_MODULE}.create_index", new_callable=AsyncMock) as create_index:
            result = runner.invoke(app, ["search", "create", "expenses", "collectives"])

        assert result.exit_code == 0
        assert [c.args[0] for c in create_index.await_args_list] == [IndexName.EXPENSES, IndexName.COLLECTIVES]
        configured.assert_awaited_once()

    def test_invalid_index(self, configured):
        result = runner.invoke(app, ["search", "create", "users"])
        assert result.exit_code == 1
        assert "Invalid index: users" in result.output

    def test_drop_asks_for_confirmation(self, configured):
        with patch(f"{CLI_MODULE}.remove_index", new_callable=AsyncMock) as remove_index:
            result = runner.invoke(app, ["search", "drop"], input="n\n")

        assert result.exit_code == 1
        remove_index.assert_not_awaited()

    def test_drop_every_index(self, configured):
        with patch(f"{CLI_MODULE}.remove_index", new_callable=AsyncMock) as remove_index:
            result = runner.invoke(app, ["search", "drop", "--yes"])

        assert result.exit_code == 0
        assert remove_index.await_count == 3


class TestSyncCommand:
    def test_sync_all(self, configured):
        with patch(f"{CLI_MODULE}.sync_index", new=AsyncMock(return_value=2)) as sync_index:
            result = runner.invoke(app, ["search", "sync", "all", "transactions"])

        assert result.exit_code == 0
        assert "2 documents indexed" in result.output
        sync_index.assert_awaited_once_with(IndexName.TRANSACTIONS, from_date=None)

    def test_invalid_date(self, configured):
        result = runner.invoke(app, ["search", "sync", "yesterday"])
        assert result.exit_code == 1
        assert "Invalid date" in result.output


def test_query(configured):
    results = {"collectives": {"count": 1, "hits": [{"id": 20, "score": 1.5, "highlight": {}}]}}
    with patch(f"{CLI_MODULE}.global_search", new=AsyncMock(return_value=results)) as global_search:
        result = runner.invoke(app, ["search", "query", "babel", "--index", "collectives", "--host-id", "10"])

    assert result.exit_code == 0
    assert '"count": 1' in result.output
    assert global_search.await_args.kwargs == {"account_id": None, "host_id": 10, "limit": 50}
