"""Split migrations moving legacy fee columns into their own pairs."""

from typing import Dict, Type

from .base import LedgerSplitMigration, MigrationResult
from .host_fees import HostFeeSplitMigration
from .payment_processor_fees import PaymentProcessorFeeSplitMigration
from .taxes import TaxSplitMigration

MIGRATIONS: Dict[str, Type[LedgerSplitMigration]] = {
    "host-fees": HostFeeSplitMigration,
    "payment-processor-fees": PaymentProcessorFeeSplitMigration,
    "taxes": TaxSplitMigration,
}

__all__ = [
    "LedgerSplitMigration",
    "MigrationResult",
    "HostFeeSplitMigration",
    "PaymentProcessorFeeSplitMigration",
    "TaxSplitMigration",
    "MIGRATIONS",
]
