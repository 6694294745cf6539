"""
Transaction Endpoints.

This module exposes the ledger rows: listing (optionally transformed for an
accounting export), reading one economic event, and refunding a transaction.
"""

from typing import List, Optional

from fastapi import APIRouter, Query

from fiscal_ledger.core.logging_config import get_logger
from fiscal_ledger.ledger.errors import TransactionNotFoundError
from fiscal_ledger.ledger.transform import transform_for_export
from fiscal_ledger.server.schemas import RefundCreate, TransactionResponse
from fiscal_ledger.server.services.deps import LedgerDep, ReposDep, SessionDep

logger = get_logger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=List[TransactionResponse],
    summary="List Transactions",
    description="List ledger rows, most recent first. With `export=true` platform tips are "
    "presented from the host's point of view.",
)
async def list_transactions(
    repos: ReposDep,
    collective_id: Optional[int] = None,
    host_id: Optional[int] = Query(default=None, description="Host collective id"),
    kind: Optional[str] = None,
    export: bool = False,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
) -> List[TransactionResponse]:
    filters = {"collective_id": collective_id, "host_collective_id": host_id, "kind": kind}
    rows = await repos.transactions.list(
        limit=limit, offset=offset, filters={k: v for k, v in filters.items() if v is not None}
    )
    if export:
        rows = await transform_for_export(rows, repos.transactions)
    return [TransactionResponse.model_validate(row) for row in rows]


@router.get(
    "/groups/{transaction_group}",
    response_model=List[TransactionResponse],
    summary="Get Transaction Group",
    description="Get every row recorded for one economic event.",
    responses={404: {"description": "Transaction group not found"}},
)
async def get_transaction_group(transaction_group: str, repos: ReposDep) -> List[TransactionResponse]:
    rows = await repos.transactions.get_by_group(transaction_group)
    if not rows:
        raise TransactionNotFoundError(f"Transaction group {transaction_group} not found")
    return [TransactionResponse.model_validate(row) for row in rows]


@router.post(
    "/{transaction_id}/refund",
    response_model=TransactionResponse,
    summary="Refund Transaction",
    description="Refund a transaction and every fee, tip and tax pair of its group.",
    responses={
        404: {"description": "Transaction not found"},
        409: {"description": "Transaction already refunded"},
    },
)
async def refund_transaction(
    transaction_id: int, refund_in: RefundCreate, ledger: LedgerDep, session: SessionDep
) -> TransactionResponse:
    """
    Refund a transaction.

    All refund rows are written in one new transaction group and committed together.
    Returns the refund row of the given transaction.
    """
    transaction = await ledger.repos.transactions.get_by_id(transaction_id)
    if transaction is None:
        raise TransactionNotFoundError(f"Transaction #{transaction_id} not found")

    try:
        refunded = await ledger.create_refund_transaction(
            transaction,
            refund_in.refunded_payment_processor_fee,
            data=refund_in.data,
            user_id=refund_in.user_id,
        )
        refund = await ledger.repos.transactions.get_refund_transaction(refunded)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(f"Refunded transaction #{transaction_id} in group {refund.transaction_group}")
    return TransactionResponse.model_validate(refund)
