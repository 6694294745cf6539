"""
Database repository layer using SQLModel.

This package contains all repository classes organized by business domain
and table relationships. Each module provides type-safe data access operations
for its corresponding SQLModel entity models.

Modules:
- base: AsyncBaseRepository interface and QueryBuilder utilities
- collectives: Account and host lookups
- transactions: Ledger rows, transaction groups and split-migration queries
- transaction_settlements: Debt settlements and pending-debt queries
- expenses: Expenses and settlement invoices
- bundle: LedgerRepositories bundle sharing one session
"""

from .base import AsyncBaseRepository, QueryBuilder
from .bundle import LedgerRepositories, build_ledger_repos
from .collectives import CollectiveRepository
from .expenses import ExpenseRepository
from .transaction_settlements import TransactionSettlementRepository
from .transactions import TransactionRepository

__all__ = [
    "AsyncBaseRepository",
    "CollectiveRepository",
    "ExpenseRepository",
    "LedgerRepositories",
    "QueryBuilder",
    "TransactionRepository",
    "TransactionSettlementRepository",
    "build_ledger_repos",
]
