from __future__ import annotations

from typing import Any, Dict, List

from fiscal_ledger.core.database.entities.expenses import Expense

from ..common import IndexName
from .base import SearchModelAdapter, format_date


class ExpensesAdapter(SearchModelAdapter):
    index = IndexName.EXPENSES
    model = Expense
    mappings = {
        "properties": {
            "id": {"type": "keyword"},
            "description": {"type": "text"},
            "type": {"type": "keyword"},
            "status": {"type": "keyword"},
            "currency": {"type": "keyword"},
            "amount": {"type": "long"},
            "CollectiveId": {"type": "keyword"},
            "FromCollectiveId": {"type": "keyword"},
            "HostCollectiveId": {"type": "keyword"},
            "incurredAt": {"type": "date"},
            "createdAt": {"type": "date"},
        }
    }
    weights = {
        "id": 0,
        "description": 5,
        "type": 0,
        "status": 0,
        "currency": 0,
        "CollectiveId": 0,
        "FromCollectiveId": 0,
        "HostCollectiveId": 0,
    }

    def related_collective_columns(self) -> List[Any]:
        return [Expense.collective_id, Expense.from_collective_id, Expense.host_collective_id]

    def map_to_document(self, entry: Expense) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "description": entry.description,
            "type": entry.type,
            "status": entry.status,
            "currency": entry.currency,
            "amount": entry.amount,
            "CollectiveId": entry.collective_id,
            "FromCollectiveId": entry.from_collective_id,
            "HostCollectiveId": entry.host_collective_id,
            "incurredAt": format_date(entry.incurred_at),
            "createdAt": format_date(entry.created_at),
        }
