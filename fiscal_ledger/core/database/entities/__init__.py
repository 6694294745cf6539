"""
Database entity models.

This package contains all database entity models organized by business domain
and table relationships.

Modules:
- collectives: Ledger accounts (collectives, hosts, users, vendors)
- transactions: Double-entry ledger rows
- transaction_settlements: Payment status of debts owed to the platform
- expenses: Expenses and settlement invoices
"""

from . import collectives, expenses, transaction_settlements, transactions
from .collectives import Collective
from .expenses import Expense
from .transaction_settlements import TransactionSettlement
from .transactions import Transaction

__all__ = [
    "Collective",
    "Expense",
    "Transaction",
    "TransactionSettlement",
    "collectives",
    "expenses",
    "transaction_settlements",
    "transactions",
]
