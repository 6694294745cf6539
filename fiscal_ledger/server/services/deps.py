"""
Service Dependencies.

Provides database sessions, repositories and the ledger service to API endpoints.
"""

from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fiscal_ledger.core.database.repositories import LedgerRepositories, build_ledger_repos
from fiscal_ledger.ledger.double_entry import LedgerService
from fiscal_ledger.ledger.fx import FxRateProvider
from fiscal_ledger.server.core.config import settings

_fx_provider: Optional[FxRateProvider] = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency generator for database sessions.

    Yields:
        AsyncSession: An asynchronous SQLAlchemy session.
    """
    from fiscal_ledger.core.database.session import async_session_maker

    async with async_session_maker() as session:
        yield session


SessionDep = Annotated[AsyncSession, Depends(get_session)]


def get_fx_provider() -> FxRateProvider:
    """Shared FX provider, so that its rate cache outlives requests."""
    global _fx_provider
    if _fx_provider is None:
        platform = settings.platform
        _fx_provider = FxRateProvider(
            settings.fx_rates_api_url,
            platform_collective_id=platform.collective_id,
            platform_currency=platform.currency,
        )
    return _fx_provider


async def close_fx_provider() -> None:
    global _fx_provider
    if _fx_provider is not None:
        await _fx_provider.aclose()
        _fx_provider = None


def get_repos(session: SessionDep) -> LedgerRepositories:
    return build_ledger_repos(session)


ReposDep = Annotated[LedgerRepositories, Depends(get_repos)]


def get_ledger(
    repos: ReposDep, fx: Annotated[FxRateProvider, Depends(get_fx_provider)]
) -> LedgerService:
    return LedgerService(repos, fx, settings.platform)


LedgerDep = Annotated[LedgerService, Depends(get_ledger)]
