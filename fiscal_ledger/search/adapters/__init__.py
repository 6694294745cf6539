"""Adapters between database tables and search indexes."""

from typing import Dict, Optional

from ..common import IndexName
from .base import SearchModelAdapter
from .collectives import CollectivesAdapter
from .expenses import ExpensesAdapter
from .transactions import TransactionsAdapter

SEARCH_ADAPTERS: Dict[IndexName, SearchModelAdapter] = {
    IndexName.COLLECTIVES: CollectivesAdapter(),
    IndexName.TRANSACTIONS: TransactionsAdapter(),
    IndexName.EXPENSES: ExpensesAdapter(),
}


def get_adapter_from_table_name(table: str) -> Optional[SearchModelAdapter]:
    return next((adapter for adapter in SEARCH_ADAPTERS.values() if adapter.table == table), None)


__all__ = [
    "SearchModelAdapter",
    "CollectivesAdapter",
    "ExpensesAdapter",
    "TransactionsAdapter",
    "SEARCH_ADAPTERS",
    "get_adapter_from_table_name",
]
