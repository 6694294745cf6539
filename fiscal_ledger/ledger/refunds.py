"""
Refund propagation.

Refunding a transaction refunds every pair recorded for the same economic
event: platform tip and its debt, payment processor fee, host fee, host fee
share and its debt, tax, and finally the main pair. All refund pairs are
written in one new transaction group and cross-linked to the rows they refund
through ``refund_transaction_id``.

If a CREDIT from collective A to collective B is refunded, two rows are
created: a CREDIT from B to A and a DEBIT from A to B.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from fiscal_ledger.core.database.entities.transactions import Transaction
from fiscal_ledger.core.logging_config import get_logger
from fiscal_ledger.core.monitoring import report_message

from . import settlements
from .amounts import calculate_net_amount_in_collective_currency, js_round
from .constants import ExpenseFeesPayer, TransactionKind, TransactionSettlementStatus, TransactionType
from .errors import AlreadyRefundedError, TransactionNotFoundError, UnsupportedFeesPayerError

if TYPE_CHECKING:
    from .double_entry import LedgerService

logger = get_logger(__name__)

CREDIT = TransactionType.CREDIT.value
DEBIT = TransactionType.DEBIT.value

REFUND_COPIED_COLUMNS = (
    "currency",
    "from_collective_id",
    "collective_id",
    "host_collective_id",
    "payment_method_id",
    "order_id",
    "expense_id",
    "host_currency_fx_rate",
    "host_currency",
    "host_fee_in_host_currency",
    "platform_fee_in_host_currency",
    "payment_processor_fee_in_host_currency",
    "tax_amount",
    "kind",
    "is_debt",
)
REFUND_COPIED_DATA_KEYS = ("hasPlatformTip", "tax")


def build_refund_for_transaction(
    transaction: Transaction,
    user_id: Optional[int] = None,
    data: Optional[Mapping[str, Any]] = None,
    refunded_payment_processor_fee: Optional[int] = None,
) -> Dict[str, Any]:
    """Build the payload refunding ``transaction``.

    Fees move back to the original ledger so their sign is flipped. Host fees are
    refunded by their own pair and are zeroed here. The processor fee is only
    kept on expense refunds paid by the payee when the processor refunded it.

    Raises:
        UnsupportedFeesPayerError: For an expense with an unknown fees payer.
    """
    refund: Dict[str, Any] = {column: getattr(transaction, column) for column in REFUND_COPIED_COLUMNS}
    original_data = transaction.get_data()
    refund["data"] = {
        **{key: original_data[key] for key in REFUND_COPIED_DATA_KEYS if key in original_data},
        **(data or {}),
    }
    refund["created_by_user_id"] = user_id
    refund["description"] = f'Refund of "{transaction.description}"'

    refund["host_fee_in_host_currency"] = -(refund["host_fee_in_host_currency"] or 0)
    refund["platform_fee_in_host_currency"] = -(refund["platform_fee_in_host_currency"] or 0)
    refund["payment_processor_fee_in_host_currency"] = -(refund["payment_processor_fee_in_host_currency"] or 0)
    if refund["tax_amount"] is not None:
        refund["tax_amount"] = -refund["tax_amount"]

    # Amounts must be computed after the fees
    refund["amount"] = -transaction.amount
    refund["amount_in_host_currency"] = -(transaction.amount_in_host_currency or 0)
    refund["is_refund"] = True
    refund["host_fee_in_host_currency"] = 0

    processor_fee = transaction.payment_processor_fee_in_host_currency or 0
    fx_rate = refund["host_currency_fx_rate"] or 1
    if refund["kind"] == TransactionKind.EXPENSE.value:
        fees_payer = original_data.get("feesPayer") or ExpenseFeesPayer.COLLECTIVE.value
        if fees_payer == ExpenseFeesPayer.PAYEE.value and refunded_payment_processor_fee and processor_fee:
            # The processor gave its fee back: it is refunded as a positive fee
            refund["payment_processor_fee_in_host_currency"] = abs(refunded_payment_processor_fee)
        elif fees_payer in (ExpenseFeesPayer.PAYEE.value, ExpenseFeesPayer.COLLECTIVE.value):
            # The collective gets the expense amount back minus the lost processor fee
            refund["amount_in_host_currency"] += abs(processor_fee)
            refund["amount"] = js_round(refund["amount_in_host_currency"] / fx_rate)
            refund["payment_processor_fee_in_host_currency"] = 0
        else:
            raise UnsupportedFeesPayerError(fees_payer)
    else:
        refund["payment_processor_fee_in_host_currency"] = 0

    refund["net_amount_in_collective_currency"] = calculate_net_amount_in_collective_currency(refund)
    return refund


async def associate_transaction_refund_id(
    ledger: "LedgerService",
    transaction: Transaction,
    refund: Transaction,
    data: Optional[Dict[str, Any]] = None,
) -> Transaction:
    """Cross-link a pair and its refund pair.

    The original CREDIT points to the refund DEBIT (and back), the original DEBIT
    to the refund CREDIT (and back).

    Returns:
        The updated row having the id of ``transaction``
    """
    rows = await ledger.repos.transactions.find_by_groups_and_kinds(
        [(transaction.transaction_group, transaction.kind), (refund.transaction_group, refund.kind)]
    )
    credit = next((t for t in rows if not t.is_refund and t.type == CREDIT), None)
    debit = next((t for t in rows if not t.is_refund and t.type == DEBIT), None)
    refund_credit = next((t for t in rows if t.is_refund and t.type == CREDIT), None)
    refund_debit = next((t for t in rows if t.is_refund and t.type == DEBIT), None)

    # Payment providers may update their data after a refund
    if data:
        for row in (debit, credit):
            if row is not None:
                row.merge_data(**data)

    if refund_credit is not None and debit is not None:
        debit.refund_transaction_id = refund_credit.id
        refund_credit.refund_transaction_id = debit.id
    if refund_debit is not None and credit is not None:
        credit.refund_transaction_id = refund_debit.id
        refund_debit.refund_transaction_id = credit.id

    updated = [row for row in (refund_credit, refund_debit, debit, credit) if row is not None]
    for row in updated:
        await ledger.repos.transactions.update(row)

    return next((row for row in updated if row.id == transaction.id), transaction)


async def refund_payment_processor_fee_to_collective(
    ledger: "LedgerService",
    transaction: Transaction,
    refund_transaction_group: str,
    data: Optional[Dict[str, Any]] = None,
    created_at: Optional[datetime] = None,
) -> Optional[Transaction]:
    """Have the host cover the processor fee lost on a refund.

    Writes a PAYMENT_PROCESSOR_COVER pair from the host to the collective. Nothing
    is written for the host's own transactions or when there is no processor fee.
    """
    if transaction.collective_id == transaction.host_collective_id:
        return None

    processor_fee_transaction = None
    if not transaction.payment_processor_fee_in_host_currency:
        processor_fee_transaction = await ledger.repos.transactions.get_related(
            transaction, kind=TransactionKind.PAYMENT_PROCESSOR_FEE.value
        )
        if processor_fee_transaction is None:
            return None

    currency = processor_fee_transaction.currency if processor_fee_transaction else transaction.currency
    host_currency_fx_rate = await ledger.fx.get_fx_rate(currency, transaction.host_currency, transaction)
    amount_in_host_currency = abs(
        processor_fee_transaction.amount_in_host_currency
        if processor_fee_transaction
        else transaction.payment_processor_fee_in_host_currency
    )
    amount = js_round(amount_in_host_currency / host_currency_fx_rate)

    return await ledger.create_double_entry(
        {
            "type": CREDIT,
            "kind": TransactionKind.PAYMENT_PROCESSOR_COVER.value,
            "collective_id": transaction.collective_id,
            "from_collective_id": transaction.host_collective_id,
            "host_collective_id": transaction.host_collective_id,
            "order_id": transaction.order_id,
            "expense_id": transaction.expense_id,
            "description": "Cover of payment processor fee for refund",
            "is_refund": True,
            "transaction_group": refund_transaction_group,
            "host_currency": transaction.host_currency,
            "amount_in_host_currency": amount_in_host_currency,
            "currency": currency,
            "amount": amount,
            "net_amount_in_collective_currency": amount,
            "host_currency_fx_rate": host_currency_fx_rate,
            "platform_fee_in_host_currency": 0,
            "payment_processor_fee_in_host_currency": 0,
            "host_fee_in_host_currency": 0,
            "data": data or {},
            "created_at": created_at,
        }
    )


async def _refund_pair(
    ledger: "LedgerService",
    transaction: Transaction,
    transaction_group: str,
    user_id: Optional[int] = None,
    data: Optional[Dict[str, Any]] = None,
    refunded_payment_processor_fee: Optional[int] = None,
    cleared_at: Optional[datetime] = None,
) -> Transaction:
    refund_data = build_refund_for_transaction(transaction, user_id, data, refunded_payment_processor_fee)
    refund_data["transaction_group"] = transaction_group
    refund_data["cleared_at"] = cleared_at
    refund_transaction = await ledger.create_double_entry(refund_data)
    await associate_transaction_refund_id(ledger, transaction, refund_transaction, data)
    return refund_transaction


async def _refund_debt(
    ledger: "LedgerService",
    transaction: Transaction,
    debt_transaction: Transaction,
    transaction_group: str,
    user_id: Optional[int],
    data: Optional[Dict[str, Any]],
    refunded_payment_processor_fee: Optional[int],
    cleared_at: Optional[datetime],
) -> Transaction:
    """Refund a debt pair and record the settlement of the refund.

    A debt still OWED is simply marked SETTLED and so is its refund. Once the debt
    was invoiced or paid, the refund is OWED to the host and deduced from the
    next invoice.
    """
    settlement = await ledger.repos.settlements.get(transaction.transaction_group, debt_transaction.kind)
    refund_status = TransactionSettlementStatus.OWED
    if settlement is not None and settlement.status == TransactionSettlementStatus.OWED.value:
        await settlements.update_status(
            ledger.repos, settlement.transaction_group, settlement.kind, TransactionSettlementStatus.SETTLED
        )
        refund_status = TransactionSettlementStatus.SETTLED

    debt_refund = await _refund_pair(
        ledger,
        debt_transaction,
        transaction_group,
        user_id,
        data,
        refunded_payment_processor_fee,
        cleared_at,
    )
    await settlements.create_for_transaction(ledger.repos, debt_refund, refund_status)
    return debt_refund


async def refund_payment_processor_fee(
    ledger: "LedgerService",
    transaction: Transaction,
    user_id: Optional[int],
    refunded_payment_processor_fee: Optional[int],
    transaction_group: str,
    cleared_at: Optional[datetime] = None,
) -> None:
    is_legacy_payment_processor_fee = bool(transaction.payment_processor_fee_in_host_currency)

    if refunded_payment_processor_fee:
        processor_fee_transaction = None
        if not is_legacy_payment_processor_fee:
            processor_fee_transaction = await ledger.repos.transactions.get_related(
                transaction, kind=TransactionKind.PAYMENT_PROCESSOR_FEE.value
            )
            if processor_fee_transaction is None:
                return

        processor_fee = (
            processor_fee_transaction.amount_in_host_currency
            if processor_fee_transaction
            else transaction.payment_processor_fee_in_host_currency
        )
        # TODO: support partial processor fee refunds now that fees have their own pair
        if abs(refunded_payment_processor_fee) != abs(processor_fee or 0):
            logger.error(
                f"Partial processor fees refunds are not supported, got {refunded_payment_processor_fee} "
                f"for #{transaction.id}"
            )
            report_message(
                "Partial processor fees refunds are not supported",
                severity="error",
                extra={"refunded_payment_processor_fee": refunded_payment_processor_fee, "transaction": transaction.summary},
            )
            return

        if processor_fee_transaction is not None:
            await _refund_pair(
                ledger, processor_fee_transaction, transaction_group, user_id, cleared_at=cleared_at
            )

    if not refunded_payment_processor_fee or is_legacy_payment_processor_fee:
        # Expenses are covered on the DEBIT side, attached to the collective and its host
        target = (
            await ledger.repos.transactions.get_related(transaction, type=DEBIT)
            if transaction.expense_id
            else transaction
        )
        fees_payer = transaction.get_data().get("feesPayer") or ExpenseFeesPayer.COLLECTIVE.value
        if target is not None and fees_payer == ExpenseFeesPayer.COLLECTIVE.value:
            await refund_payment_processor_fee_to_collective(ledger, target, transaction_group)


async def refund_host_fee(
    ledger: "LedgerService",
    transaction: Transaction,
    user_id: Optional[int],
    refunded_payment_processor_fee: Optional[int],
    transaction_group: str,
    cleared_at: Optional[datetime] = None,
) -> None:
    repo = ledger.repos.transactions
    host_fee_transaction = await repo.get_related(transaction, kind=TransactionKind.HOST_FEE.value, type=CREDIT)
    if host_fee_transaction is None or host_fee_transaction.id == transaction.id:
        return

    await _refund_pair(
        ledger, host_fee_transaction, transaction_group, user_id, None, refunded_payment_processor_fee, cleared_at
    )

    host_fee_share_transaction = await repo.get_related(transaction, kind=TransactionKind.HOST_FEE_SHARE.value)
    if host_fee_share_transaction is None:
        return
    await _refund_pair(
        ledger,
        host_fee_share_transaction,
        transaction_group,
        user_id,
        None,
        refunded_payment_processor_fee,
        cleared_at,
    )

    host_fee_share_debt_transaction = await repo.get_related(
        transaction, kind=TransactionKind.HOST_FEE_SHARE_DEBT.value, is_debt=True
    )
    if host_fee_share_debt_transaction is not None:
        await _refund_debt(
            ledger,
            transaction,
            host_fee_share_debt_transaction,
            transaction_group,
            user_id,
            None,
            refunded_payment_processor_fee,
            cleared_at,
        )


async def refund_tax(
    ledger: "LedgerService",
    transaction: Transaction,
    user_id: Optional[int],
    transaction_group: str,
    cleared_at: Optional[datetime] = None,
) -> None:
    tax_transaction = await ledger.repos.transactions.get_related(transaction, kind=TransactionKind.TAX.value)
    if tax_transaction is not None:
        await _refund_pair(ledger, tax_transaction, transaction_group, user_id, cleared_at=cleared_at)


async def create_refund_transaction(
    ledger: "LedgerService",
    transaction: Transaction,
    refunded_payment_processor_fee: Optional[int] = 0,
    data: Optional[Dict[str, Any]] = None,
    user_id: Optional[int] = None,
    transaction_group: Optional[str] = None,
    cleared_at: Optional[datetime] = None,
) -> Transaction:
    """Refund a transaction and every pair of its economic event.

    Args:
        ledger: Ledger service of the current unit of work
        transaction: DEBIT or CREDIT row to refund. A DEBIT is resolved to its
            CREDIT, except for a self-transfer which only has one row.
        refunded_payment_processor_fee: Fee the payment processor gave back. When
            zero, the host covers the lost fee for the collective.
        data: Payment data saved on the refund rows
        user_id: User requesting the refund
        transaction_group: Group of the refund pairs, new by default
        cleared_at: Clearing date of the refund pairs

    Returns:
        The refunded CREDIT row itself (not a refund row), reloaded with its
        ``refund_transaction_id`` set to the id of the refund DEBIT

    Raises:
        TransactionNotFoundError: If there is no CREDIT side to refund.
        AlreadyRefundedError: If the transaction was already refunded.
    """
    resolved: Optional[Transaction] = transaction
    if transaction.type == DEBIT and transaction.from_collective_id != transaction.collective_id:
        resolved = await ledger.repos.transactions.get_related(transaction, type=CREDIT)

    if resolved is None:
        raise TransactionNotFoundError("Cannot find any CREDIT transaction to refund")
    if resolved.refund_transaction_id:
        raise AlreadyRefundedError()
    transaction = resolved

    transaction_group = transaction_group or str(uuid.uuid4())
    repo = ledger.repos.transactions
    logger.info(f"Refunding transaction #{transaction.id} of group {transaction.transaction_group}")

    # Platform tip, then its debt. Directly collected (and legacy) tips have no debt.
    platform_tip_transaction = await repo.get_related(transaction, kind=TransactionKind.PLATFORM_TIP.value)
    if platform_tip_transaction is not None and platform_tip_transaction.id != transaction.id:
        await _refund_pair(
            ledger,
            platform_tip_transaction,
            transaction_group,
            user_id,
            data,
            refunded_payment_processor_fee,
            cleared_at,
        )
        platform_tip_debt_transaction = await repo.get_related(
            transaction, kind=TransactionKind.PLATFORM_TIP_DEBT.value, is_debt=True
        )
        if platform_tip_debt_transaction is not None:
            await _refund_debt(
                ledger,
                transaction,
                platform_tip_debt_transaction,
                transaction_group,
                user_id,
                data,
                refunded_payment_processor_fee,
                cleared_at,
            )

    await refund_payment_processor_fee(
        ledger, transaction, user_id, refunded_payment_processor_fee, transaction_group, cleared_at
    )
    await refund_host_fee(ledger, transaction, user_id, refunded_payment_processor_fee, transaction_group, cleared_at)
    await refund_tax(ledger, transaction, user_id, transaction_group, cleared_at)

    refund_data = build_refund_for_transaction(transaction, user_id, data, refunded_payment_processor_fee)
    refund_data["transaction_group"] = transaction_group
    refund_data["cleared_at"] = cleared_at
    refund_transaction = await ledger.create_double_entry(refund_data)
    return await associate_transaction_refund_id(ledger, transaction, refund_transaction, data)
