"""
Unit tests for search sync requests, index names and adapters.
"""

from datetime import datetime

import pytest

from fiscal_ledger.core.database.entities import Collective, Expense, Transaction
from fiscal_ledger.search import InvalidSearchRequestError, SearchRequestType, parse_search_request
from fiscal_ledger.search.adapters import SEARCH_ADAPTERS, get_adapter_from_table_name
from fiscal_ledger.search.common import IndexName, format_index_name, parse_index_name


class TestParseSearchRequest:
    def test_json_payload(self):
        request = parse_search_request('{"type": "UPDATE", "table": "transactions", "payload": {"id": 12}}')
        assert request.type == SearchRequestType.UPDATE
        assert request.table == "transactions"
        assert request.payload.id == 12
        assert request.is_full_account_re_index is False

    def test_insert_is_an_update(self):
        request = parse_search_request({"type": "INSERT", "table": "collectives", "payload": {"id": 1}})
        assert request.type == SearchRequestType.UPDATE

    def test_full_account_re_index_needs_no_table(self):
        request = parse_search_request({"type": "FULL_ACCOUNT_RE_INDEX", "payload": {"id": 20}})
        assert request.is_full_account_re_index is True

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            '{"type": "UPDATE", "payload": {"id": 1}}',
            '{"type": "TRUNCATE", "table": "transactions", "payload": {"id": 1}}',
            '{"type": "DELETE", "table": "transactions", "payload": {}}',
        ],
    )
    def test_invalid_payloads(self, raw):
        with pytest.raises(InvalidSearchRequestError):
            parse_search_request(raw)


class TestIndexNames:
    def test_without_prefix(self):
        assert format_index_name(IndexName.TRANSACTIONS, prefix="") == "transactions"
        assert parse_index_name("transactions", prefix="") == IndexName.TRANSACTIONS

    def test_with_prefix(self):
        assert format_index_name(IndexName.EXPENSES, prefix="staging") == "staging_expenses"
        assert parse_index_name("staging_expenses", prefix="staging") == IndexName.EXPENSES
        assert parse_index_name("expenses", prefix="staging") is None

    def test_foreign_index(self):
        assert parse_index_name(".kibana", prefix="") is None


class TestAdapters:
    def test_lookup_by_table(self):
        assert get_adapter_from_table_name("collectives") is SEARCH_ADAPTERS[IndexName.COLLECTIVES]
        assert get_adapter_from_table_name("transactions").index == IndexName.TRANSACTIONS
        assert get_adapter_from_table_name("users") is None

    def test_searchable_fields_with_weights(self):
        assert SEARCH_ADAPTERS[IndexName.COLLECTIVES].searchable_fields() == [
            "slug^50",
            "name^50",
            "description^10",
            "tags^5",
        ]
        assert SEARCH_ADAPTERS[IndexName.TRANSACTIONS].searchable_fields() == [
            "uuid",
            "description",
            "TransactionGroup",
        ]
        assert SEARCH_ADAPTERS[IndexName.EXPENSES].searchable_fields() == ["description^5"]

    def test_collective_document(self):
        collective = Collective(
            id=20, slug="babel", name="Babel", type="COLLECTIVE", currency="EUR", tags=["open source"],
            host_collective_id=10, is_active=True, created_at=datetime(2024, 1, 2, 3, 4, 5),
        )
        document = SEARCH_ADAPTERS[IndexName.COLLECTIVES].map_to_document(collective)
        assert document["slug"] == "babel"
        assert document["tags"] == ["open source"]
        assert document["HostCollectiveId"] == 10
        assert document["hasMoneyManagement"] is False
        assert document["createdAt"] == "2024-01-02T03:04:05"

    def test_transaction_document(self):
        transaction = Transaction(
            id=1, uuid="2b1b7f4e-0000-4000-8000-000000000000", type="DEBIT", kind="TAX",
            transaction_group="group", collective_id=20, from_collective_id=10, amount=-100, currency="USD",
            is_debt=None,
        )
        document = SEARCH_ADAPTERS[IndexName.TRANSACTIONS].map_to_document(transaction)
        assert document["TransactionGroup"] == "group"
        assert document["FromCollectiveId"] == 10
        assert document["isDebt"] is False

    def test_expense_document(self):
        expense = Expense(id=3, collective_id=10, from_collective_id=8686, description="Settlement", amount=1000,
                          currency="USD", incurred_at=datetime(2024, 3, 1))
        document = SEARCH_ADAPTERS[IndexName.EXPENSES].map_to_document(expense)
        assert document["CollectiveId"] == 10
        assert document["incurredAt"] == "2024-03-01T00:00:00"

    async def test_find_entries_related_to_accounts(self, session, accounts):
        adapter = SEARCH_ADAPTERS[IndexName.COLLECTIVES]
        entries = await adapter.find_entries_to_index(session, related_to_collective_ids=[10])
        # The host itself and the collective it hosts
        assert [c.id for c in entries] == [10, 20]

        entries = await adapter.find_entries_to_index(session, ids=[30, 8686], limit=1)
        assert [c.id for c in entries] == [30]

    async def test_find_deleted_ids(self, session, accounts):
        accounts["user"].deleted_at = datetime(2024, 5, 1)
        await session.flush()

        adapter = SEARCH_ADAPTERS[IndexName.COLLECTIVES]
        assert await adapter.find_deleted_ids(session, datetime(2024, 1, 1)) == [30]
        assert await adapter.find_deleted_ids(session, datetime(2024, 6, 1)) == []
        assert 30 not in [c.id for c in await adapter.find_entries_to_index(session)]
