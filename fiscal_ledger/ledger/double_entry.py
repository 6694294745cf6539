"""
Double-entry pairing.

Every movement of money is recorded twice: once from the perspective of the
account receiving it (CREDIT) and once from the perspective of the account
giving it (DEBIT). Both rows share the same ``transaction_group``.

Example, a $10 contribution from User1 to Collective1 with $1 of processor fee,
$1 of host fee and $1 of platform fee:

    DEBIT   collective=U1 from=C1  amount=-7   net=-10  fees=-1/-1/-1
    CREDIT  collective=C1 from=U1  amount=10   net=7    fees=-1/-1/-1

``LedgerService`` is the entry point used by the API, the CLI and the split
migrations. Fee splitting and refunds live in ``fees`` and ``refunds`` and use
``create_double_entry`` to write their pairs.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Mapping, Optional

from fiscal_ledger.core.database.entities.collectives import Collective
from fiscal_ledger.core.database.entities.transactions import Transaction
from fiscal_ledger.core.database.repositories.bundle import LedgerRepositories
from fiscal_ledger.core.logging_config import get_logger
from fiscal_ledger.server.core.config import PlatformConfig

from . import fees, refunds
from .amounts import calc_fee, js_round
from .constants import TransactionKind, TransactionType
from .errors import InvalidTransactionError
from .fx import FxRateProvider

logger = get_logger(__name__)

CREDIT = TransactionType.CREDIT.value
DEBIT = TransactionType.DEBIT.value

FEE_COLUMNS = (
    "platform_fee_in_host_currency",
    "host_fee_in_host_currency",
    "payment_processor_fee_in_host_currency",
)

# Columns never copied from a payload into a new row
_GENERATED_COLUMNS = {"id", "uuid"}
_TRANSACTION_COLUMNS = set(Transaction.model_fields) - _GENERATED_COLUMNS


class LedgerService:
    """Write ledger rows for one unit of work.

    The service flushes through the repositories and never commits: the caller
    owning the session commits once the whole event is recorded.
    """

    def __init__(
        self,
        repos: LedgerRepositories,
        fx: FxRateProvider,
        platform: Optional[PlatformConfig] = None,
    ) -> None:
        self.repos = repos
        self.fx = fx
        self.platform = platform or PlatformConfig()

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    async def create_transaction(self, values: Mapping[str, Any]) -> Transaction:
        """Insert a single ledger row from a payload, ignoring keys that are not columns."""
        row = {key: value for key, value in values.items() if key in _TRANSACTION_COLUMNS}
        if row.get("created_at") is None:
            row.pop("created_at", None)
        row["data"] = dict(row.get("data") or {})
        return await self.repos.transactions.create(Transaction(**row))

    async def get_platform_collective(self) -> Optional[Collective]:
        return await self.repos.collectives.get_by_id(self.platform.collective_id)

    async def get_platform_host_id(self) -> int:
        platform = await self.get_platform_collective()
        if platform is not None and platform.host_collective_id:
            return platform.host_collective_id
        return self.platform.collective_id

    async def create_double_entry(self, data: Mapping[str, Any]) -> Transaction:
        """Record a transaction and its opposite.

        The opposite row is expressed from the perspective of the from-collective:
        accounts are swapped, and amounts are re-expressed in the currency of the
        from-collective's host when it has an active host. No fees are charged on
        the opposite side except the host fee of an expense paid across two hosts.

        Args:
            data: Row values. ``amount`` is required; ``type``, ``transaction_group``,
                ``net_amount_in_collective_currency`` and ``host_currency_fx_rate``
                are defaulted.

        Returns:
            The row matching ``data`` (the opposite row is not returned)

        Raises:
            InvalidTransactionError: If the from-collective does not exist.
        """
        transaction: Dict[str, Any] = dict(data)
        transaction["type"] = CREDIT if transaction["amount"] > 0 else DEBIT
        transaction["net_amount_in_collective_currency"] = (
            transaction.get("net_amount_in_collective_currency") or transaction["amount"]
        )
        transaction["transaction_group"] = transaction.get("transaction_group") or str(uuid.uuid4())
        transaction["host_currency_fx_rate"] = transaction.get("host_currency_fx_rate") or 1
        for column in FEE_COLUMNS:
            transaction[column] = transaction.get(column) or 0
        transaction["data"] = dict(transaction.get("data") or {})

        # Self-transfers only have one side
        if transaction.get("from_collective_id") == transaction.get("collective_id"):
            return await self.create_transaction(transaction)

        if transaction.get("amount_in_host_currency") is not None:
            transaction["amount_in_host_currency"] = js_round(transaction["amount_in_host_currency"])

        from_collective = await self.repos.collectives.get_by_id(transaction["from_collective_id"])
        if from_collective is None:
            raise InvalidTransactionError(f"From collective #{transaction['from_collective_id']} not found")
        from_collective_host = await self.repos.collectives.get_host(from_collective)

        fx_rate = transaction["host_currency_fx_rate"]
        opposite: Dict[str, Any] = {
            **transaction,
            "type": CREDIT if -transaction["amount"] > 0 else DEBIT,
            "from_collective_id": transaction["collective_id"],
            "collective_id": transaction["from_collective_id"],
        }

        if not from_collective.is_active or from_collective_host is None:
            opposite.update(
                host_collective_id=None,
                amount=-transaction["net_amount_in_collective_currency"],
                net_amount_in_collective_currency=-transaction["amount"],
                amount_in_host_currency=js_round(-transaction["net_amount_in_collective_currency"] * fx_rate),
            )
        else:
            host_currency = from_collective_host.currency
            host_currency_fx_rate = await self.fx.get_fx_rate(transaction["currency"], host_currency, transaction)
            opposite_fx_rate = await self.fx.get_fx_rate(transaction.get("host_currency"), host_currency, transaction)

            opposite_data = {k: v for k, v in transaction["data"].items() if k != "hostToPlatformFxRate"}
            opposite_data["oppositeTransactionHostCurrencyFxRate"] = opposite_fx_rate
            opposite.update(
                host_collective_id=from_collective_host.id,
                host_currency=host_currency,
                host_currency_fx_rate=host_currency_fx_rate,
                amount=-js_round(transaction["net_amount_in_collective_currency"]),
                net_amount_in_collective_currency=-js_round(transaction["amount"]),
                amount_in_host_currency=-js_round(
                    transaction["net_amount_in_collective_currency"] * host_currency_fx_rate
                ),
                data=opposite_data,
                **{column: js_round(transaction[column] * opposite_fx_rate) for column in FEE_COLUMNS},
            )
            transaction["data"] = {
                **transaction["data"],
                "oppositeTransactionHostCurrencyFxRate": 1 / opposite_fx_rate,
            }

            if opposite.get("kind") == TransactionKind.EXPENSE.value and not opposite.get("is_refund"):
                await self._charge_cross_host_expense_fee(
                    transaction, opposite, from_collective, from_collective_host, host_currency_fx_rate
                )

        logger.debug(
            "create_double_entry group=%s kind=%s amount=%s opposite_amount=%s",
            transaction["transaction_group"],
            transaction.get("kind"),
            transaction["amount"],
            opposite["amount"],
        )

        # The negative side is always recorded first
        if transaction["amount"] < 0:
            created = await self.create_transaction(transaction)
            await self.create_transaction(opposite)
            return created
        await self.create_transaction(opposite)
        return await self.create_transaction(transaction)

    async def _charge_cross_host_expense_fee(
        self,
        transaction: Dict[str, Any],
        opposite: Dict[str, Any],
        from_collective: Collective,
        from_collective_host: Collective,
        host_currency_fx_rate: float,
    ) -> None:
        """Charge the payer host's fee when an expense is paid to an account of another host."""
        collective = await self.repos.collectives.get_by_id(transaction["collective_id"])
        collective_host = await self.repos.collectives.get_host(collective) if collective else None
        if collective_host is not None and collective_host.id == from_collective_host.id:
            return

        host_fee_percent = 0 if from_collective.is_host_account else from_collective.host_fee_percent
        tax_in_host_currency = js_round((transaction.get("tax_amount") or 0) * host_currency_fx_rate)
        opposite["host_fee_in_host_currency"] = calc_fee(
            opposite["amount_in_host_currency"]
            + opposite["payment_processor_fee_in_host_currency"]
            + tax_in_host_currency,
            host_fee_percent,
        )
        if opposite["host_fee_in_host_currency"]:
            await fees.create_host_fee_transactions(self, opposite, from_collective_host)

    # ------------------------------------------------------------------
    # Facades
    # ------------------------------------------------------------------

    async def record_contribution(
        self, payload: Mapping[str, Any], is_platform_revenue_directly_collected: bool = False
    ) -> Transaction:
        return await fees.record_contribution(self, payload, is_platform_revenue_directly_collected)

    async def create_refund_transaction(
        self,
        transaction: Transaction,
        refunded_payment_processor_fee: int = 0,
        data: Optional[Dict[str, Any]] = None,
        user_id: Optional[int] = None,
        transaction_group: Optional[str] = None,
        cleared_at: Any = None,
    ) -> Transaction:
        return await refunds.create_refund_transaction(
            self,
            transaction,
            refunded_payment_processor_fee,
            data=data,
            user_id=user_id,
            transaction_group=transaction_group,
            cleared_at=cleared_at,
        )
