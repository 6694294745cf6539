"""Split legacy payment processor fees into PAYMENT_PROCESSOR_FEE pairs.

Meant to run after the host fees migration: no other fee is left on the
migrated rows, only taxes.
"""

from __future__ import annotations

from typing import Any, Dict

from fiscal_ledger.core.database.entities.transactions import Transaction
from fiscal_ledger.core.logging_config import get_logger

from .. import fees
from ..amounts import js_round
from ..constants import TransactionKind
from ..refunds import refund_payment_processor_fee_to_collective
from .base import LedgerSplitMigration

logger = get_logger(__name__)


class PaymentProcessorFeeSplitMigration(LedgerSplitMigration):
    name = "payment processor fees"
    column = "payment_processor_fee_in_host_currency"
    migration_field = "paymentProcessorFeeMigration"
    backup_columns = (
        "amount",
        "amount_in_host_currency",
        "net_amount_in_collective_currency",
        "payment_processor_fee_in_host_currency",
    )
    created_kinds = (
        TransactionKind.PAYMENT_PROCESSOR_FEE.value,
        TransactionKind.PAYMENT_PROCESSOR_COVER.value,
    )

    async def migrate_pair(self, credit: Transaction, debit: Transaction, transactions_data: Dict[str, Any]) -> bool:
        credit_backup = self.backup(credit)
        debit_backup = self.backup(debit)
        result = await fees.create_payment_processor_fee_transactions(
            self.ledger, credit.model_dump(), transactions_data
        )
        payment_processor_fee_transaction = result["payment_processor_fee_transaction"]

        transaction_taxes = credit.tax_amount or 0
        net_amount = js_round(credit.amount_in_host_currency / credit.host_currency_fx_rate + transaction_taxes)

        credit.payment_processor_fee_in_host_currency = 0
        credit.net_amount_in_collective_currency = net_amount
        self.stamp(credit, transactions_data, credit_backup)
        await self.transactions.update(credit)

        debit.payment_processor_fee_in_host_currency = 0
        debit.amount = -js_round(net_amount)
        debit.amount_in_host_currency = -js_round(net_amount * debit.host_currency_fx_rate)
        self.stamp(debit, transactions_data, debit_backup)
        await self.transactions.update(debit)

        if not credit.refund_transaction_id:
            return True

        refund_credit, refund_debit = await self.get_refund_pair(credit, debit)
        if refund_credit is None or refund_debit is None:
            logger.error(f"Incomplete refund pair for transaction group {credit.transaction_group}")
            return True

        refund_credit_backup = self.backup(refund_credit)
        refund_credit.payment_processor_fee_in_host_currency = 0
        refund_credit.amount = net_amount
        refund_credit.amount_in_host_currency = js_round(net_amount / debit.host_currency_fx_rate)
        self.stamp(refund_credit, transactions_data, refund_credit_backup)
        await self.transactions.update(refund_credit)

        refund_debit_backup = self.backup(refund_debit)
        refund_debit.payment_processor_fee_in_host_currency = 0
        refund_debit.net_amount_in_collective_currency = -net_amount
        self.stamp(refund_debit, transactions_data, refund_debit_backup)
        await self.transactions.update(refund_debit)

        await self.refund_split_pair(payment_processor_fee_transaction, refund_credit, transactions_data)
        # The fee now lives in its own pair, the cover is computed from it
        await refund_payment_processor_fee_to_collective(
            self.ledger, credit, refund_credit.transaction_group, transactions_data, refund_credit.created_at
        )
        return True
