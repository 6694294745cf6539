from __future__ import annotations

from typing import Any, Dict, List

from fiscal_ledger.core.database.entities.transactions import Transaction

from ..common import IndexName
from .base import SearchModelAdapter, format_date


class TransactionsAdapter(SearchModelAdapter):
    index = IndexName.TRANSACTIONS
    model = Transaction
    mappings = {
        "properties": {
            "id": {"type": "keyword"},
            "uuid": {"type": "keyword"},
            "kind": {"type": "keyword"},
            "type": {"type": "keyword"},
            "description": {"type": "text"},
            "TransactionGroup": {"type": "keyword"},
            "currency": {"type": "keyword"},
            "amount": {"type": "long"},
            "isRefund": {"type": "boolean"},
            "isDebt": {"type": "boolean"},
            "CollectiveId": {"type": "keyword"},
            "FromCollectiveId": {"type": "keyword"},
            "HostCollectiveId": {"type": "keyword"},
            "OrderId": {"type": "keyword"},
            "ExpenseId": {"type": "keyword"},
            "createdAt": {"type": "date"},
        }
    }
    weights = {
        "id": 0,
        "kind": 0,
        "type": 0,
        "currency": 0,
        "CollectiveId": 0,
        "FromCollectiveId": 0,
        "HostCollectiveId": 0,
        "OrderId": 0,
        "ExpenseId": 0,
    }

    def related_collective_columns(self) -> List[Any]:
        return [Transaction.collective_id, Transaction.from_collective_id, Transaction.host_collective_id]

    def map_to_document(self, entry: Transaction) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "uuid": str(entry.uuid) if entry.uuid else None,
            "kind": entry.kind,
            "type": entry.type,
            "description": entry.description,
            "TransactionGroup": entry.transaction_group,
            "currency": entry.currency,
            "amount": entry.amount,
            "isRefund": bool(entry.is_refund),
            "isDebt": bool(entry.is_debt),
            "CollectiveId": entry.collective_id,
            "FromCollectiveId": entry.from_collective_id,
            "HostCollectiveId": entry.host_collective_id,
            "OrderId": entry.order_id,
            "ExpenseId": entry.expense_id,
            "createdAt": format_date(entry.created_at),
        }
