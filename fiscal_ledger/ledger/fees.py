"""
Fee splitting.

Fees used to be stored as columns on the main pair
(``host_fee_in_host_currency``, ``payment_processor_fee_in_host_currency``,
``platform_fee_in_host_currency``, ``tax_amount``). They are now recorded as
separate pairs in the same transaction group, so that every account balance
is the plain sum of its rows.

Each splitter receives the payload of the main transaction (as a dict, from the
CREDIT perspective unless stated otherwise), writes its pair, zeroes the
corresponding column on the payload and returns what it created.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from fiscal_ledger.core.database.entities.collectives import Collective
from fiscal_ledger.core.database.entities.transactions import Transaction

from . import settlements
from .amounts import calc_fee, calculate_net_amount_in_collective_currency, js_round, to_negative
from .constants import TransactionKind, TransactionSettlementStatus, TransactionType
from .errors import InvalidTransactionError

if TYPE_CHECKING:
    from .double_entry import LedgerService

CREDIT = TransactionType.CREDIT.value
DEBIT = TransactionType.DEBIT.value

NO_FEES = {
    "platform_fee_in_host_currency": 0,
    "host_fee_in_host_currency": 0,
    "payment_processor_fee_in_host_currency": 0,
}


def _pick(source: Any, keys) -> Dict[str, Any]:
    values = source if isinstance(source, Mapping) else source.model_dump()
    return {key: values.get(key) for key in keys if key in values}


def get_platform_tip(transaction: Mapping[str, Any]) -> int:
    if transaction.get("platform_tip") is not None:
        return transaction["platform_tip"]
    # Legacy form
    return (transaction.get("data") or {}).get("platformTip") or 0


# ----------------------------------------------------------------------
# Host fee
# ----------------------------------------------------------------------


async def create_host_fee_transactions(
    ledger: "LedgerService",
    transaction: Dict[str, Any],
    host: Collective,
    data: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """Move the host fee of ``transaction`` into a HOST_FEE pair from the collective to its host.

    The amount in host currency is the absolute host fee; the amount in the
    collective currency is converted back with the transaction rate.
    """
    if not transaction.get("host_fee_in_host_currency"):
        return None

    amount_in_host_currency = abs(transaction["host_fee_in_host_currency"])
    host_currency_fx_rate = transaction.get("host_currency_fx_rate") or 1
    amount = js_round(amount_in_host_currency / host_currency_fx_rate)

    host_fee_transaction = await ledger.create_double_entry(
        {
            "type": CREDIT,
            "kind": TransactionKind.HOST_FEE.value,
            "description": "Host Fee",
            "transaction_group": transaction["transaction_group"],
            "from_collective_id": transaction["collective_id"],
            "collective_id": host.id,
            "host_collective_id": host.id,
            "amount": amount,
            "net_amount_in_collective_currency": amount,
            "currency": transaction["currency"],
            "amount_in_host_currency": amount_in_host_currency,
            "host_currency": transaction.get("host_currency"),
            "host_currency_fx_rate": host_currency_fx_rate,
            **NO_FEES,
            "order_id": transaction.get("order_id"),
            "created_at": transaction.get("created_at"),
            "data": data,
        }
    )

    transaction["host_fee_in_host_currency"] = 0
    return {"transaction": transaction, "host_fee_transaction": host_fee_transaction}


async def create_host_fee_share_transactions(
    ledger: "LedgerService",
    transaction: Mapping[str, Any],
    host_fee_transaction: Transaction,
    host: Collective,
    is_directly_collected: bool = False,
) -> Optional[Dict[str, Any]]:
    """Give the platform its share of a host fee.

    The share is ``host.host_fee_share_percent`` of the host fee in host currency,
    credited to the platform and re-expressed in the platform currency. Unless it
    was collected directly by the platform, the host owes it: a debt pair and an
    OWED settlement are recorded.
    """
    host_fee_share_percent = host.host_fee_share_percent
    if not host_fee_share_percent:
        return None

    if await ledger.get_platform_collective() is None:
        return None

    amount = calc_fee(host_fee_transaction.amount_in_host_currency or 0, host_fee_share_percent)
    currency = host_fee_transaction.host_currency
    # e.g. 15% of 0.03 rounds to 0
    if amount == 0:
        return None

    host_currency = ledger.platform.currency
    host_currency_fx_rate = await ledger.fx.get_fx_rate(currency, host_currency, transaction)
    amount_in_host_currency = js_round(amount * host_currency_fx_rate)

    host_fee_share_transaction = await ledger.create_double_entry(
        {
            "type": CREDIT,
            "kind": TransactionKind.HOST_FEE_SHARE.value,
            "description": "Host Fee Share",
            "transaction_group": host_fee_transaction.transaction_group,
            "from_collective_id": host.id,
            "collective_id": ledger.platform.collective_id,
            "host_collective_id": await ledger.get_platform_host_id(),
            "amount": amount,
            "net_amount_in_collective_currency": amount,
            "currency": currency,
            "amount_in_host_currency": amount_in_host_currency,
            "host_currency": host_currency,
            "host_currency_fx_rate": host_currency_fx_rate,
            **NO_FEES,
            "order_id": host_fee_transaction.order_id,
            "created_at": host_fee_transaction.created_at,
        }
    )

    host_fee_share_debt_transaction = None
    if not is_directly_collected:
        host_fee_share_debt_transaction = await create_host_fee_share_debt_transactions(
            ledger, host_fee_share_transaction
        )

    return {
        "host_fee_share_transaction": host_fee_share_transaction,
        "host_fee_share_debt_transaction": host_fee_share_debt_transaction,
    }


async def create_host_fee_share_debt_transactions(
    ledger: "LedgerService", host_fee_share_transaction: Transaction
) -> Transaction:
    if host_fee_share_transaction.type == DEBIT:
        raise InvalidTransactionError("create_host_fee_share_debt_transactions must be given a CREDIT transaction")

    debt_transaction = await ledger.create_double_entry(
        {
            **_pick(
                host_fee_share_transaction,
                [
                    "transaction_group",
                    "from_collective_id",
                    "collective_id",
                    "host_collective_id",
                    "order_id",
                    "created_at",
                    "currency",
                    "host_currency",
                    "host_currency_fx_rate",
                ],
            ),
            "type": DEBIT,
            "kind": TransactionKind.HOST_FEE_SHARE_DEBT.value,
            "is_debt": True,
            "description": "Host Fee Share owed to the platform",
            "amount": -host_fee_share_transaction.amount,
            "net_amount_in_collective_currency": -(host_fee_share_transaction.net_amount_in_collective_currency or 0),
            "amount_in_host_currency": -(host_fee_share_transaction.amount_in_host_currency or 0),
            **NO_FEES,
        }
    )
    await settlements.create_for_transaction(ledger.repos, debt_transaction, TransactionSettlementStatus.OWED)
    return debt_transaction


# ----------------------------------------------------------------------
# Platform tip
# ----------------------------------------------------------------------


async def create_platform_tip_debt_transactions(
    ledger: "LedgerService", platform_tip_transaction: Transaction, host: Collective
) -> Transaction:
    """Record that ``host`` owes the platform a tip it collected, with an OWED settlement."""
    if platform_tip_transaction.type == DEBIT:
        raise InvalidTransactionError("create_platform_tip_debt_transactions must be given a CREDIT transaction")

    debt_transaction = await ledger.create_double_entry(
        {
            **_pick(
                platform_tip_transaction,
                [
                    "transaction_group",
                    "collective_id",
                    "host_collective_id",
                    "order_id",
                    "created_at",
                    "currency",
                    "host_currency",
                    "host_currency_fx_rate",
                ],
            ),
            "type": DEBIT,
            "kind": TransactionKind.PLATFORM_TIP_DEBT.value,
            "is_debt": True,
            "description": "Platform Tip collected for the platform",
            "from_collective_id": host.id,
            "amount": -platform_tip_transaction.amount,
            "net_amount_in_collective_currency": -(platform_tip_transaction.net_amount_in_collective_currency or 0),
            "amount_in_host_currency": -(platform_tip_transaction.amount_in_host_currency or 0),
            **NO_FEES,
        }
    )
    await settlements.create_for_transaction(ledger.repos, debt_transaction, TransactionSettlementStatus.OWED)
    return debt_transaction


async def create_platform_tip_transactions(
    ledger: "LedgerService",
    transaction: Dict[str, Any],
    host: Collective,
    is_directly_collected: bool = False,
) -> Optional[Dict[str, Any]]:
    """Split the platform tip out of a contribution.

    The tip is credited to the platform in the contribution currency, with the
    amount in host currency expressed in the platform currency. The tip is then
    subtracted from the contribution and the legacy platform fee is reset.
    """
    platform_tip = get_platform_tip(transaction)
    if not platform_tip:
        return None

    amount = platform_tip
    currency = transaction["currency"]

    host_currency = ledger.platform.currency
    host_currency_fx_rate = await ledger.fx.get_fx_rate(currency, host_currency, transaction)
    amount_in_host_currency = js_round(amount * host_currency_fx_rate)

    # Kept on the tip so later conversions host -> platform reuse the same rate
    host_to_platform_fx_rate = await ledger.fx.get_fx_rate(transaction.get("host_currency"), host_currency, transaction)

    platform_tip_transaction = await ledger.create_double_entry(
        {
            **_pick(
                transaction,
                ["transaction_group", "from_collective_id", "order_id", "created_by_user_id", "payment_method_id"],
            ),
            "type": CREDIT,
            "kind": TransactionKind.PLATFORM_TIP.value,
            "description": "Financial contribution to the platform",
            "collective_id": ledger.platform.collective_id,
            "host_collective_id": await ledger.get_platform_host_id(),
            "amount": amount,
            "net_amount_in_collective_currency": amount,
            "currency": currency,
            "amount_in_host_currency": amount_in_host_currency,
            "host_currency": host_currency,
            "host_currency_fx_rate": host_currency_fx_rate,
            **NO_FEES,
            "is_debt": False,
            "data": {
                "hostToPlatformFxRate": host_to_platform_fx_rate,
                "settled": (transaction.get("data") or {}).get("settled"),
            },
        }
    )

    platform_tip_debt_transaction = None
    if not is_directly_collected:
        platform_tip_debt_transaction = await create_platform_tip_debt_transactions(
            ledger, platform_tip_transaction, host
        )

    # A tip amount in host currency provided by the payment provider is trusted over our conversion
    platform_tip_in_host_currency = (transaction.get("data") or {}).get("platformTipInHostCurrency") or js_round(
        platform_tip * (transaction.get("host_currency_fx_rate") or 1)
    )

    transaction["amount_in_host_currency"] = js_round(
        (transaction.get("amount_in_host_currency") or 0) - platform_tip_in_host_currency
    )
    transaction["amount"] = js_round(transaction["amount"] - platform_tip)
    transaction["platform_fee_in_host_currency"] = 0

    return {
        "transaction": transaction,
        "platform_tip_transaction": platform_tip_transaction,
        "platform_tip_debt_transaction": platform_tip_debt_transaction,
    }


# ----------------------------------------------------------------------
# Payment processor fee and taxes
# ----------------------------------------------------------------------


async def create_payment_processor_fee_transactions(
    ledger: "LedgerService",
    transaction: Dict[str, Any],
    data: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """Move the processor fee into a PAYMENT_PROCESSOR_FEE pair.

    The collective of ``transaction`` is debited; its host, which settles with the
    payment processor, is the counterparty.
    """
    if not transaction.get("payment_processor_fee_in_host_currency"):
        return None

    host_collective_id = transaction.get("host_collective_id")
    if not host_collective_id:
        raise InvalidTransactionError("Cannot split a payment processor fee without host")

    host_currency_fx_rate = transaction.get("host_currency_fx_rate") or 1
    amount_in_host_currency = -abs(transaction["payment_processor_fee_in_host_currency"])
    amount = js_round(amount_in_host_currency / host_currency_fx_rate)

    payment_processor_fee_transaction = await ledger.create_double_entry(
        {
            "type": DEBIT,
            "kind": TransactionKind.PAYMENT_PROCESSOR_FEE.value,
            "description": "Payment Processor Fee",
            "transaction_group": transaction["transaction_group"],
            "collective_id": transaction["collective_id"],
            "from_collective_id": host_collective_id,
            "host_collective_id": host_collective_id,
            "amount": amount,
            "net_amount_in_collective_currency": amount,
            "currency": transaction["currency"],
            "amount_in_host_currency": amount_in_host_currency,
            "host_currency": transaction.get("host_currency"),
            "host_currency_fx_rate": host_currency_fx_rate,
            **NO_FEES,
            "order_id": transaction.get("order_id"),
            "expense_id": transaction.get("expense_id"),
            "payment_method_id": transaction.get("payment_method_id"),
            "created_at": transaction.get("created_at"),
            "data": data,
        }
    )

    transaction["payment_processor_fee_in_host_currency"] = 0
    return {"transaction": transaction, "payment_processor_fee_transaction": payment_processor_fee_transaction}


async def create_tax_transactions(
    ledger: "LedgerService",
    transaction: Dict[str, Any],
    data: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """Move the tax of ``transaction`` into a TAX pair debiting its collective.

    For expenses the tax is collected by the payee, otherwise by the host. The
    main transaction keeps its amount; only its tax is zeroed and its net
    amount recomputed.
    """
    if not transaction.get("tax_amount"):
        return None

    if transaction.get("kind") == TransactionKind.EXPENSE.value:
        counterparty_id = transaction.get("from_collective_id")
    else:
        counterparty_id = transaction.get("host_collective_id")
    if not counterparty_id:
        raise InvalidTransactionError("Cannot split a tax without counterparty")

    host_currency_fx_rate = transaction.get("host_currency_fx_rate") or 1
    amount = -abs(transaction["tax_amount"])

    tax_transaction = await ledger.create_double_entry(
        {
            "type": DEBIT,
            "kind": TransactionKind.TAX.value,
            "description": "Tax",
            "transaction_group": transaction["transaction_group"],
            "collective_id": transaction["collective_id"],
            "from_collective_id": counterparty_id,
            "host_collective_id": transaction.get("host_collective_id"),
            "amount": amount,
            "net_amount_in_collective_currency": amount,
            "currency": transaction["currency"],
            "amount_in_host_currency": js_round(amount * host_currency_fx_rate),
            "host_currency": transaction.get("host_currency"),
            "host_currency_fx_rate": host_currency_fx_rate,
            **NO_FEES,
            "order_id": transaction.get("order_id"),
            "expense_id": transaction.get("expense_id"),
            "created_at": transaction.get("created_at"),
            "data": data,
        }
    )

    transaction["tax_amount"] = 0
    transaction["net_amount_in_collective_currency"] = calculate_net_amount_in_collective_currency(transaction)
    return {"transaction": transaction, "tax_transaction": tax_transaction}


# ----------------------------------------------------------------------
# Contributions
# ----------------------------------------------------------------------


def validate_contribution_payload(payload: Mapping[str, Any]) -> None:
    """Check a contribution payload before it is recorded.

    Raises:
        InvalidTransactionError: Describing the first invalid field.
    """
    if not payload.get("amount") or payload["amount"] < 0:
        raise InvalidTransactionError("amount should be set and positive")
    if not payload.get("currency"):
        raise InvalidTransactionError("currency should be set")
    if payload.get("host_currency") and (
        not payload.get("amount_in_host_currency") or payload["amount_in_host_currency"] < 0
    ):
        raise InvalidTransactionError("amount_in_host_currency should be set and positive")
    if payload.get("amount_in_host_currency") and not payload.get("host_currency"):
        raise InvalidTransactionError("host_currency should be set")
    if payload.get("type") and payload["type"] != CREDIT:
        raise InvalidTransactionError("type should be null or CREDIT")
    if payload.get("net_amount_in_collective_currency") is not None:
        raise InvalidTransactionError("net_amount_in_collective_currency should not be set")


async def record_contribution(
    ledger: "LedgerService",
    payload: Mapping[str, Any],
    is_platform_revenue_directly_collected: bool = False,
) -> Transaction:
    """Record a contribution and split its fees.

    Rows are written in this order, all in one new transaction group: platform
    tip (and its debt), host fee, host fee share (and its debt), payment
    processor fee, then the contribution pair itself with its net amount
    recomputed from what is left.

    Returns:
        The CREDIT contribution row
    """
    try:
        validate_contribution_payload(payload)
    except InvalidTransactionError as e:
        raise InvalidTransactionError(f"record_contribution: {e}") from e

    transaction: Dict[str, Any] = dict(payload)
    collective = await ledger.repos.collectives.get_by_id(transaction["collective_id"])
    if collective is None:
        raise InvalidTransactionError(f"Collective #{transaction['collective_id']} not found")
    host = await ledger.repos.collectives.get_host(collective)
    transaction["host_collective_id"] = collective.id if collective.is_host_account else (host.id if host else None)
    if not transaction["host_collective_id"] or host is None:
        raise InvalidTransactionError(
            f"Cannot create transaction: Collective with id '{collective.id}' doesn't have a Host"
        )

    transaction["transaction_group"] = str(uuid.uuid4())
    transaction["type"] = CREDIT
    transaction["kind"] = transaction.get("kind") or TransactionKind.CONTRIBUTION.value

    if not transaction.get("host_currency") and not transaction.get("amount_in_host_currency"):
        transaction["amount_in_host_currency"] = transaction["amount"]
        transaction["host_currency"] = transaction["currency"]
    transaction["host_currency_fx_rate"] = transaction.get("host_currency_fx_rate") or 1

    transaction["host_fee_in_host_currency"] = to_negative(transaction.get("host_fee_in_host_currency")) or 0
    transaction["platform_fee_in_host_currency"] = to_negative(transaction.get("platform_fee_in_host_currency")) or 0
    transaction["payment_processor_fee_in_host_currency"] = (
        to_negative(transaction.get("payment_processor_fee_in_host_currency")) or 0
    )
    transaction["tax_amount"] = to_negative(transaction.get("tax_amount"))

    await create_platform_tip_transactions(ledger, transaction, host, is_platform_revenue_directly_collected)

    if transaction["host_fee_in_host_currency"]:
        result = await create_host_fee_transactions(ledger, transaction, host)
        if result and result["host_fee_transaction"]:
            await create_host_fee_share_transactions(
                ledger, transaction, result["host_fee_transaction"], host, is_platform_revenue_directly_collected
            )

    await create_payment_processor_fee_transactions(ledger, transaction)

    transaction.pop("platform_tip", None)
    transaction["net_amount_in_collective_currency"] = calculate_net_amount_in_collective_currency(transaction)
    return await ledger.create_double_entry(transaction)
