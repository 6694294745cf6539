"""
Search Endpoints.

This module exposes the multi-index search and the account re-index trigger.
"""

from typing import List, Optional

from fastapi import APIRouter, Query

from fiscal_ledger.search.client import is_search_configured
from fiscal_ledger.search.errors import SearchNotConfiguredError
from fiscal_ledger.search.search import global_search
from fiscal_ledger.search.sync import parse_indexes
from fiscal_ledger.search.sync_postgres import full_account_re_index
from fiscal_ledger.server.schemas import ReIndexResponse, SearchResponse

router = APIRouter()


@router.get(
    "",
    response_model=SearchResponse,
    summary="Search",
    description="Search collectives, transactions and expenses at once, grouped by index.",
    responses={503: {"description": "Search is not configured"}},
)
async def search(
    q: str = Query(..., min_length=1, description="Search term"),
    index: Optional[List[str]] = Query(default=None, description="Indexes to search, all by default"),
    account_id: Optional[int] = None,
    host_id: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=200),
) -> SearchResponse:
    if not is_search_configured():
        raise SearchNotConfiguredError()
    results = await global_search(q, parse_indexes(index), account_id=account_id, host_id=host_id, limit=limit)
    return SearchResponse(query=q, results=results)


@router.post(
    "/accounts/{collective_id}/re-index",
    response_model=ReIndexResponse,
    status_code=202,
    summary="Re-index Account",
    description="Queue a re-index of every entry related to an account.",
)
async def re_index_account(collective_id: int) -> ReIndexResponse:
    queued = is_search_configured()
    full_account_re_index(collective_id)
    return ReIndexResponse(collective_id=collective_id, queued=queued)
