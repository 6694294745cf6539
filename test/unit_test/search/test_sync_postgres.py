"""
Unit tests for the Postgres LISTEN/NOTIFY search sync job.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fiscal_ledger.search import sync_postgres
from fiscal_ledger.search.errors import SearchNotConfiguredError
from fiscal_ledger.search.types import SearchRequestType


@pytest.fixture
def processor():
    processor = MagicMock()
    processor.flush_and_close = AsyncMock()
    with (
        patch.object(sync_postgres.SearchBatchProcessor, "get_instance", return_value=processor),
        patch.object(sync_postgres.SearchBatchProcessor, "current_instance", return_value=processor),
    ):
        yield processor


@pytest.fixture
def connection():
    connection = MagicMock()
    connection.add_listener = AsyncMock()
    connection.remove_listener = AsyncMock()
    connection.execute = AsyncMock()
    connection.close = AsyncMock()
    return connection


class TestTriggersSql:
    def test_setup_sql_covers_every_table_and_operation(self):
        sql = sync_postgres.get_setup_triggers_sql()
        assert "pg_notify('search-requests'" in sql
        for table in ("collectives", "transactions", "expenses"):
            for operation in ("insert", "update", "delete"):
                assert f"{table}_{operation}_trigger AFTER {operation.upper()} ON \"{table}\"" in sql

    def test_remove_sql(self):
        sql = sync_postgres.get_remove_triggers_sql()
        assert 'DROP TRIGGER IF EXISTS transactions_update_trigger ON "transactions";' in sql
        assert sql.endswith("DROP FUNCTION IF EXISTS notify_search_on_change();")


def test_listener_dsn(monkeypatch):
    monkeypatch.setattr(sync_postgres.settings, "database_url", "postgres://ledger:secret@db:5432/ledger")
    assert sync_postgres.get_listener_dsn() == "postgresql://ledger:secret@db:5432/ledger"


class TestHandleNotification:
    def test_valid_notification_is_queued(self, processor):
        sync_postgres.handle_notification(
            None, 1, "search-requests", '{"type": "INSERT", "table": "expenses", "payload": {"id": 4}}'
        )

        request = processor.add_to_queue.call_args.args[0]
        assert request.type == SearchRequestType.UPDATE
        assert request.table == "expenses"

    def test_invalid_notification_is_reported(self, processor):
        with patch.object(sync_postgres, "report_message") as report_message:
            sync_postgres.handle_notification(None, 1, "search-requests", "{oops")

        report_message.assert_called_once()
        assert report_message.call_args.kwargs["extra"] == {"event": "{oops"}
        processor.add_to_queue.assert_not_called()

    def test_queue_failure_is_reported(self, processor):
        processor.add_to_queue.side_effect = RuntimeError("boom")
        with patch.object(sync_postgres, "report_error") as report_error:
            sync_postgres.handle_notification(
                None, 1, "search-requests", '{"type": "DELETE", "table": "expenses", "payload": {"id": 4}}'
            )
        report_error.assert_called_once()


class TestStartStop:
    async def test_start_and_stop(self, processor, connection):
        """Test the full lifecycle on an injected connection."""
        returned = await sync_postgres.start_postgres_sync(connection)

        assert returned is connection
        processor.start.assert_called_once()
        connection.add_listener.assert_awaited_once_with("search-requests", sync_postgres.handle_notification)
        connection.execute.assert_awaited_once_with(sync_postgres.get_setup_triggers_sql())

        await sync_postgres.stop_postgres_sync()
        # A second call waits on the same shutdown
        await sync_postgres.stop_postgres_sync()

        connection.remove_listener.assert_awaited_once_with("search-requests", sync_postgres.handle_notification)
        connection.execute.assert_awaited_with(sync_postgres.get_remove_triggers_sql())
        processor.flush_and_close.assert_awaited_once()
        connection.close.assert_awaited_once()

    async def test_trigger_setup_failure(self, processor, connection):
        connection.execute.side_effect = Exception("permission denied")

        with patch.object(sync_postgres, "report_error"):
            with pytest.raises(RuntimeError, match="Failed to setup Postgres triggers"):
                await sync_postgres.start_postgres_sync(connection)

    async def test_stop_without_start_is_a_no_op(self, monkeypatch):
        monkeypatch.setattr(sync_postgres, "_shutdown_task", None)
        monkeypatch.setattr(sync_postgres, "_connection", None)

        with (
            patch.object(sync_postgres.SearchBatchProcessor, "current_instance", return_value=None),
            patch.object(
                sync_postgres.SearchBatchProcessor,
                "get_instance",
                side_effect=SearchNotConfiguredError("OpenSearch is not configured"),
            ) as get_instance,
        ):
            await sync_postgres.stop_postgres_sync()

        get_instance.assert_not_called()
        assert sync_postgres._shutdown_task is None


class TestFullAccountReIndex:
    def test_skipped_when_search_is_not_configured(self, processor):
        sync_postgres.full_account_re_index(20)
        processor.add_to_queue.assert_not_called()

    def test_queues_request(self, processor):
        with patch.object(sync_postgres, "is_search_configured", return_value=True):
            sync_postgres.full_account_re_index(20)

        request = processor.add_to_queue.call_args.args[0]
        assert request.is_full_account_re_index
        assert request.payload.id == 20
