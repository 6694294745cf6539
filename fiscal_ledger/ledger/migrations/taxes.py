"""Split legacy taxes into TAX pairs.

Assumes host fees and payment processor fees were already split: the main pair
is left with no fee once its tax is moved out.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from fiscal_ledger.core.database.entities.transactions import Transaction
from fiscal_ledger.core.logging_config import get_logger

from .. import fees
from ..amounts import js_round
from ..constants import TransactionKind, TransactionType
from .base import LedgerSplitMigration

logger = get_logger(__name__)


class TaxSplitMigration(LedgerSplitMigration):
    name = "taxes"
    column = "tax_amount"
    migration_field = "taxMigration"
    backup_columns = ("amount", "amount_in_host_currency", "net_amount_in_collective_currency", "tax_amount")
    created_kinds = (TransactionKind.TAX.value,)
    default_start_date = datetime(2023, 1, 1)

    async def migrate_pair(self, credit: Transaction, debit: Transaction, transactions_data: Dict[str, Any]) -> bool:
        if credit.currency != debit.currency:
            logger.error(f"DEBIT and CREDIT have a different currency in {credit.transaction_group}, skipping.")
            return False

        credit_backup = self.backup(credit)
        debit_backup = self.backup(debit)

        # Expense taxes are carried by the collective's side of the pair
        to_migrate = debit if credit.kind == TransactionKind.EXPENSE.value else credit
        result = await fees.create_tax_transactions(
            self.ledger, to_migrate.model_dump(), {**transactions_data, **to_migrate.get_data()}
        )
        migrated = result["transaction"]
        if migrated["type"] == TransactionType.CREDIT.value:
            credit_amount = migrated["amount"]
            debit_amount = -js_round(migrated["amount"])
        else:
            debit_amount = migrated["amount"]
            credit_amount = -js_round(migrated["amount"])

        fx_rate = debit.host_currency_fx_rate
        for row, amount, backup in ((credit, credit_amount, credit_backup), (debit, debit_amount, debit_backup)):
            row.tax_amount = 0
            row.amount = amount
            row.net_amount_in_collective_currency = amount
            row.amount_in_host_currency = js_round(amount * fx_rate)
            self.stamp(row, transactions_data, backup)
            await self.transactions.update(row)

        if not credit.refund_transaction_id:
            return True

        refund_credit, refund_debit = await self.get_refund_pair(credit, debit)
        if refund_credit is None or refund_debit is None:
            logger.error(f"Incomplete refund pair for transaction group {credit.transaction_group}")
            return True

        refund_credit_backup = self.backup(refund_credit)
        refund_credit.tax_amount = 0
        refund_credit.amount = credit_amount
        refund_credit.amount_in_host_currency = js_round(credit_amount / fx_rate)
        self.stamp(refund_credit, transactions_data, refund_credit_backup)
        await self.transactions.update(refund_credit)

        refund_debit_backup = self.backup(refund_debit)
        refund_debit.tax_amount = 0
        refund_debit.net_amount_in_collective_currency = -credit_amount
        self.stamp(refund_debit, transactions_data, refund_debit_backup)
        await self.transactions.update(refund_debit)

        await self.refund_split_pair(result["tax_transaction"], refund_credit, transactions_data)
        return True
