"""
Liveness and version endpoints for the ledger API.
"""

from fastapi import APIRouter

from fiscal_ledger.server.core import constant
from fiscal_ledger.server.core.config import settings

router = APIRouter()


@router.get(
    "/health",
    summary="Health Check",
    description="Report that the ledger API is up and whether OpenSearch is wired in.",
)
async def health_check():
    return {"status": "ok", "search": settings.opensearch.is_configured}


@router.get("/version", summary="Get Version")
async def version():
    """Return the API package version and the ledger schema generation."""
    return {"version": constant.API_VERSION, "schema_version": "v1"}
