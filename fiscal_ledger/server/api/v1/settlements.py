"""
Settlement Endpoints.

This module handles the debts hosts owe the platform: listing their
settlements, changing a settlement status, and running the monthly invoicing.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from fiscal_ledger.ledger import settlements
from fiscal_ledger.ledger.constants import TransactionSettlementStatus
from fiscal_ledger.server.core.config import settings
from fiscal_ledger.server.schemas import (
    SettlementResponse,
    SettlementRunRequest,
    SettlementRunResponse,
    SettlementUpdate,
)
from fiscal_ledger.server.services.deps import ReposDep, SessionDep

router = APIRouter()


@router.get(
    "",
    response_model=List[SettlementResponse],
    summary="List Settlements",
    description="List debt settlements, optionally for one host and one status.",
)
async def list_settlements(
    repos: ReposDep,
    host_id: Optional[int] = None,
    status: Optional[TransactionSettlementStatus] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
) -> List[SettlementResponse]:
    filters = {}
    if host_id is not None:
        filters["host_id"] = host_id
    if status is not None:
        filters["status"] = status.value
    rows = await repos.settlements.list(limit=limit, offset=offset, filters=filters)
    return [SettlementResponse.model_validate(row) for row in rows]


@router.patch(
    "/{transaction_group}/{kind}",
    response_model=SettlementResponse,
    summary="Update Settlement Status",
    responses={404: {"description": "Settlement not found"}},
)
async def update_settlement(
    transaction_group: str, kind: str, update_in: SettlementUpdate, repos: ReposDep, session: SessionDep
) -> SettlementResponse:
    settlement = await settlements.update_status(repos, transaction_group, kind, update_in.status)
    if settlement is None:
        raise HTTPException(status_code=404, detail="Settlement not found")
    await session.commit()
    return SettlementResponse.model_validate(settlement)


@router.post(
    "/run",
    response_model=SettlementRunResponse,
    summary="Run Host Settlement",
    description="Invoice every host for the platform tips and host fee shares owed over one month.",
)
async def run_settlement(run_in: SettlementRunRequest, repos: ReposDep, session: SessionDep) -> SettlementRunResponse:
    """
    Run the monthly host settlement.

    Without year/month, the month preceding today is settled.
    """
    base_date = None
    if run_in.year and run_in.month:
        # settlement_period returns the month before the base date
        base_date = datetime(run_in.year + run_in.month // 12, run_in.month % 12 + 1, 1)
    start, end = settlements.settlement_period(base_date)

    service = settlements.HostSettlementService(repos, settings.platform)
    reports = await service.run(start, end, host_id=run_in.host_id, dry_run=run_in.dry_run)
    if not run_in.dry_run:
        await session.commit()
    return SettlementRunResponse(start=start, end=end, dry_run=run_in.dry_run, reports=reports)
