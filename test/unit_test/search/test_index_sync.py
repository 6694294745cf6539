"""
Unit tests for index management and full synchronization.
"""

from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from fiscal_ledger.search.common import IndexName
from fiscal_ledger.search.errors import InvalidIndexError
from fiscal_ledger.search.sync import (
    create_index,
    get_available_indexes,
    parse_indexes,
    remove_index,
    sync_index,
)


@pytest.fixture
def client():
    client = AsyncMock()
    client.bulk.return_value = {"items": [], "took": 1, "errors": False}
    return client


class TestParseIndexes:
    def test_defaults_to_every_index(self):
        assert parse_indexes([]) == [IndexName.COLLECTIVES, IndexName.TRANSACTIONS, IndexName.EXPENSES]

    def test_unique_in_given_order(self):
        assert parse_indexes(["expenses", "collectives", "expenses"]) == [IndexName.EXPENSES, IndexName.COLLECTIVES]

    def test_unknown_index(self):
        with pytest.raises(InvalidIndexError, match="users"):
            parse_indexes(["users"])


class TestIndexManagement:
    async def test_create_index_with_mappings(self, client):
        await create_index(IndexName.EXPENSES, client=client)

        kwargs = client.indices.create.await_args.kwargs
        assert kwargs["index"] == "expenses"
        assert kwargs["body"]["mappings"]["properties"]["description"] == {"type": "text"}

    async def test_remove_index(self, client):
        await remove_index(IndexName.COLLECTIVES, client=client)
        client.indices.delete.assert_awaited_with(index="collectives", ignore=[404])

        await remove_index(IndexName.COLLECTIVES, throw_if_missing=True, client=client)
        client.indices.delete.assert_awaited_with(index="collectives")

    async def test_available_indexes(self, client):
        client.indices.get_alias.return_value = {"expenses": {}, ".kibana": {}, "collectives": {}}
        assert await get_available_indexes(client=client) == [IndexName.COLLECTIVES, IndexName.EXPENSES]


class TestSyncIndex:
    async def test_indexes_in_batches(self, client, session, session_maker, accounts):
        await session.commit()

        indexed = await sync_index(IndexName.COLLECTIVES, batch_size=3, client=client, session_factory=session_maker)

        assert indexed == 4
        assert client.bulk.await_count == 2
        first_batch = client.bulk.await_args_list[0].kwargs["body"]
        assert first_batch[0] == {"index": {"_index": "collectives", "_id": "10"}}
        assert len(first_batch) == 6

    async def test_from_date_removes_deleted_entries(self, client, session, session_maker, accounts):
        accounts["user"].deleted_at = datetime(2024, 5, 1)
        await session.commit()

        indexed = await sync_index(
            IndexName.COLLECTIVES, from_date=datetime(2024, 1, 1), client=client, session_factory=session_maker
        )

        assert indexed == 3
        deletes = client.bulk.await_args_list[0].kwargs["body"]
        assert deletes == [{"delete": {"_index": "collectives", "_id": "30"}}]

    async def test_empty_table(self, client, session_maker):
        assert await sync_index(IndexName.EXPENSES, client=client, session_factory=session_maker) == 0
        client.bulk.assert_not_awaited()
