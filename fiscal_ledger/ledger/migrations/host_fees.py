"""Split legacy host fees into HOST_FEE pairs."""

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


class HostFeeSplitMigration(LedgerSplitMigration):
    name = "host fees"
    column = "host_fee_in_host_currency"
    migration_field = "hostFeeMigration"
    backup_columns = (
        "host_fee_in_host_currency",
        "amount",
        "amount_in_host_currency",
        "net_amount_in_collective_currency",
        "payment_processor_fee_in_host_currency",
    )
    created_kinds = (
        TransactionKind.HOST_FEE.value,
        TransactionKind.PAYMENT_PROCESSOR_FEE.value,
        TransactionKind.PAYMENT_PROCESSOR_COVER.value,
    )

    async def migrate_pair(self, credit: Transaction, debit: Transaction, transactions_data: Dict[str, Any]) -> bool:
        host = await self.get_host(credit)
        if host is None:
            logger.error(f"No host for transaction group {credit.transaction_group}, skipping")
            return False

        credit_backup = self.backup(credit)
        debit_backup = self.backup(debit)
        result = await fees.create_host_fee_transactions(self.ledger, credit.model_dump(), host, transactions_data)
        host_fee_transaction = result["host_fee_transaction"]

        transaction_fees = (credit.platform_fee_in_host_currency or 0) + (
            credit.payment_processor_fee_in_host_currency or 0
        )
        transaction_taxes = credit.tax_amount or 0
        net_amount = js_round(
            (credit.amount_in_host_currency + transaction_fees) / credit.host_currency_fx_rate + transaction_taxes
        )

        credit.host_fee_in_host_currency = 0
        credit.net_amount_in_collective_currency = net_amount
        self.stamp(credit, transactions_data, credit_backup)
        await self.transactions.update(credit)

        debit.host_fee_in_host_currency = 0
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
        refund_credit.host_fee_in_host_currency = 0
        refund_credit.amount = net_amount
        refund_credit.amount_in_host_currency = js_round(net_amount / debit.host_currency_fx_rate)
        refund_credit.payment_processor_fee_in_host_currency = -(credit.payment_processor_fee_in_host_currency or 0)
        self.stamp(refund_credit, transactions_data, refund_credit_backup)
        await self.transactions.update(refund_credit)

        refund_debit_backup = self.backup(refund_debit)
        refund_debit.host_fee_in_host_currency = 0
        refund_debit.net_amount_in_collective_currency = -net_amount
        refund_debit.payment_processor_fee_in_host_currency = -(credit.payment_processor_fee_in_host_currency or 0)
        self.stamp(refund_debit, transactions_data, refund_debit_backup)
        await self.transactions.update(refund_debit)

        await self.refund_split_pair(host_fee_transaction, refund_credit, transactions_data)
        await refund_payment_processor_fee_to_collective(
            self.ledger, credit, refund_credit.transaction_group, transactions_data, refund_credit.created_at
        )
        return True
