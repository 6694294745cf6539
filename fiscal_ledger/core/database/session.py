"""
Process-wide ledger engine and the FastAPI session dependency.
"""

from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from fiscal_ledger.server.core.config import settings

from .utils import create_engine, create_sessionmaker

engine = create_engine(settings.database_url)
async_session_maker = create_sessionmaker(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per request; routes commit their own unit of work."""
    async with async_session_maker() as session:
        yield session
