"""
Engine and session helpers for the ledger database.

The ledger always talks to Postgres through asyncpg in production, while the
test-suite runs against ``sqlite+aiosqlite``; both go through the same helpers.
"""

from __future__ import annotations

import re

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from . import entities  # noqa: F401  registers the tables on the metadata
from .base import Base

_POSTGRES_SCHEME = re.compile(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://")


def normalize_database_url(db_url: str) -> str:
    """Point any Postgres URL (``postgres://``, ``postgresql+psycopg://`` ...) at asyncpg."""
    return _POSTGRES_SCHEME.sub("postgresql+asyncpg://", db_url, count=1)


def create_engine(db_url: str) -> AsyncEngine:
    """Build the async engine for ``db_url``.

    Non-Postgres URLs such as ``sqlite+aiosqlite://`` are passed through untouched.
    """
    return create_async_engine(normalize_database_url(db_url), pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Ledger rows are read back after the unit of work commits.
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create the ledger tables straight from the metadata.

    Only for tests and throwaway databases; real deployments run the Alembic
    revisions under ``alembic/versions``.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
