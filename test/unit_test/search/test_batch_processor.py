"""
Unit tests for the debounced search batch processor.

The OpenSearch client is an AsyncMock; rows are read from the in-memory
SQLite database through the test session maker.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from fiscal_ledger.core.database.entities import Transaction
from fiscal_ledger.search.batch_processor import SearchBatchProcessor
from fiscal_ledger.search.errors import SearchNotConfiguredError
from fiscal_ledger.search.types import SearchRequest, SearchRequestType


def _request(type_: str, table, entity_id: int) -> SearchRequest:
    return SearchRequest(type=SearchRequestType(type_), table=table, payload={"id": entity_id})


@pytest.fixture
def client():
    client = AsyncMock()
    client.bulk.return_value = {"items": [], "took": 3, "errors": False}
    client.delete_by_query.return_value = {"took": 2}
    return client


@pytest.fixture
def processor(client, session_maker):
    processor = SearchBatchProcessor(client, session_factory=session_maker, max_batch_size=10, max_sync_delay=10)
    processor.start()
    return processor


@pytest.fixture(autouse=True)
def _reset_singleton():
    SearchBatchProcessor.reset_instance()
    yield
    SearchBatchProcessor.reset_instance()


async def _wait_for(condition, timeout: float = 2.0) -> None:
    for _ in range(int(timeout / 0.01)):
        if condition():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("Condition not met in time")


async def _committed_accounts(session, accounts):
    session.add(
        Transaction(type="CREDIT", kind="CONTRIBUTION", transaction_group="g", collective_id=20,
                    from_collective_id=30, host_collective_id=10, amount=1000, currency="USD")
    )
    await session.commit()
    return accounts


class TestPreprocessRequests:
    def test_keeps_latest_request_per_entity(self):
        accounts, grouped = SearchBatchProcessor.preprocess_requests(
            [
                _request("UPDATE", "transactions", 1),
                _request("DELETE", "transactions", 2),
                _request("DELETE", "transactions", 1),
                _request("UPDATE", "expenses", 1),
            ]
        )
        assert accounts == []
        assert [(r.type.value, r.payload.id) for r in grouped["transactions"]] == [("DELETE", 2), ("DELETE", 1)]
        assert [r.payload.id for r in grouped["expenses"]] == [1]

    def test_full_account_re_index_wins_over_account_updates(self):
        accounts, grouped = SearchBatchProcessor.preprocess_requests(
            [
                _request("UPDATE", "collectives", 20),
                _request("FULL_ACCOUNT_RE_INDEX", None, 20),
                _request("UPDATE", "collectives", 20),
                _request("UPDATE", "collectives", 21),
                _request("FULL_ACCOUNT_RE_INDEX", None, 20),
            ]
        )
        assert accounts == [20]
        assert [r.payload.id for r in grouped["collectives"]] == [21]

    def test_delete_query(self):
        assert SearchBatchProcessor.get_accounts_re_index_delete_query([]) is None

        query = SearchBatchProcessor.get_accounts_re_index_delete_query([20])
        assert query["index"] == "collectives,transactions,expenses"
        should = query["body"]["query"]["bool"]["should"]
        assert should[0]["bool"]["must"][1] == {"terms": {"_id": ["20"]}}
        assert {"terms": {"CollectiveId": [20]}} in [clause["bool"]["must"][0] for clause in should]


class TestConvertRequests:
    async def test_index_and_delete_operations(self, processor, session, accounts):
        await _committed_accounts(session, accounts)

        operations, delete_query = await processor.convert_requests_to_bulk_operations(
            [
                _request("UPDATE", "collectives", 20),
                _request("UPDATE", "transactions", 999),
                _request("DELETE", "expenses", 5),
                _request("UPDATE", "users", 1),
            ]
        )

        assert delete_query is None
        assert operations[0] == {"index": {"_index": "collectives", "_id": "20"}}
        assert operations[1]["slug"] == "babel"
        # Rows that no longer exist are removed from the index
        assert operations[2] == {"delete": {"_index": "transactions", "_id": "999"}}
        assert operations[3] == {"delete": {"_index": "expenses", "_id": "5"}}
        assert len(operations) == 4

    async def test_full_account_re_index(self, processor, session, accounts):
        await _committed_accounts(session, accounts)

        operations, delete_query = await processor.convert_requests_to_bulk_operations(
            [_request("FULL_ACCOUNT_RE_INDEX", None, 20)]
        )

        assert delete_query is not None
        indexed = [op["index"]["_index"] for op in operations if "index" in op]
        assert indexed == ["collectives", "transactions"]


class TestQueue:
    async def test_ignores_requests_when_not_started(self, client, session_maker):
        processor = SearchBatchProcessor(client, session_factory=session_maker)
        processor.add_to_queue(_request("UPDATE", "collectives", 20))
        assert processor.queue_size == 0
        assert processor.has_scheduled_batch is False

    async def test_flushes_after_sync_delay(self, processor, client, session, accounts):
        """Test that a single request is sent once the debounce window is over."""
        await _committed_accounts(session, accounts)

        processor.add_to_queue(_request("UPDATE", "collectives", 20))
        assert processor.has_scheduled_batch is True
        assert processor.queue_size == 1

        await _wait_for(lambda: client.bulk.await_count == 1)
        await _wait_for(lambda: not processor.is_processing)
        assert processor.queue_size == 0
        assert processor.has_scheduled_batch is False

    async def test_flushes_immediately_when_batch_is_full(self, client, session_maker, session, accounts):
        """Test that reaching the batch size triggers a batch without waiting."""
        await _committed_accounts(session, accounts)
        processor = SearchBatchProcessor(client, session_factory=session_maker, max_batch_size=2, max_sync_delay=60000)
        processor.start()

        processor.add_to_queue(_request("UPDATE", "collectives", 20))
        processor.add_to_queue(_request("UPDATE", "collectives", 10))

        await _wait_for(lambda: client.bulk.await_count == 1)
        operations = client.bulk.await_args.kwargs["body"]
        assert [op["index"]["_id"] for op in operations if "index" in op] == ["20", "10"]

    async def test_full_account_re_index_is_sent_immediately(self, processor, client, session, accounts):
        await _committed_accounts(session, accounts)
        processor.max_sync_delay = 60000

        processor.add_to_queue(_request("FULL_ACCOUNT_RE_INDEX", None, 20))

        await _wait_for(lambda: client.bulk.await_count == 1)
        client.delete_by_query.assert_awaited_once()

    async def test_flush_and_close_drains_queue(self, client, session_maker, session, accounts):
        await _committed_accounts(session, accounts)
        processor = SearchBatchProcessor(client, session_factory=session_maker, max_batch_size=1, max_sync_delay=60000)
        processor.start()
        processor._queue.extend(
            [_request("UPDATE", "collectives", 20), _request("UPDATE", "collectives", 10)]
        )

        await processor.flush_and_close()

        assert processor.is_started is False
        assert processor.queue_size == 0
        assert client.bulk.await_count == 2
        processor.add_to_queue(_request("UPDATE", "collectives", 20))
        assert processor.queue_size == 0

    async def test_bulk_errors_are_reported(self, processor, client, session, accounts):
        await _committed_accounts(session, accounts)
        client.bulk.return_value = {"items": [], "took": 1, "errors": True}
        processor._queue.append(_request("UPDATE", "collectives", 20))

        with patch("fiscal_ledger.search.batch_processor.report_message") as report_message:
            await processor.call_process_batch()

        report_message.assert_called_once()
        assert report_message.call_args.kwargs["extra"]["processing_queue"][0]["payload"] == {"id": 20}

    async def test_client_failure_is_reported_and_processing_resumes(self, processor, client, session, accounts):
        await _committed_accounts(session, accounts)
        client.bulk.side_effect = RuntimeError("cluster down")
        processor._queue.append(_request("UPDATE", "collectives", 20))

        with patch("fiscal_ledger.search.batch_processor.report_error") as report_error:
            await processor.call_process_batch()

        report_error.assert_called_once()
        assert processor.is_processing is False
        assert processor._process_batch_task is None


def test_get_instance_requires_configuration():
    with pytest.raises(SearchNotConfiguredError):
        SearchBatchProcessor.get_instance()
