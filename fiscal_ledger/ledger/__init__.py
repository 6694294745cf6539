"""Double-entry ledger: pairs, fees, refunds, settlements and split migrations."""

from .constants import (
    CollectiveType,
    ExpenseFeesPayer,
    ExpenseStatus,
    ExpenseType,
    TransactionKind,
    TransactionSettlementStatus,
    TransactionType,
)
from .double_entry import LedgerService
from .errors import LedgerError
from .fx import FxRateProvider

__all__ = [
    "CollectiveType",
    "ExpenseFeesPayer",
    "ExpenseStatus",
    "ExpenseType",
    "TransactionKind",
    "TransactionSettlementStatus",
    "TransactionType",
    "LedgerService",
    "LedgerError",
    "FxRateProvider",
]
