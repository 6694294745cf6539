"""Unit tests for database engine helpers."""

import pytest
from sqlalchemy import inspect

from fiscal_ledger.core.database import create_all, create_engine, create_sessionmaker, normalize_database_url


class TestNormalizeDatabaseUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "postgres://user:pw@db:5432/ledger",
            "postgresql://user:pw@db:5432/ledger",
            "postgresql+psycopg://user:pw@db:5432/ledger",
            "postgresql+asyncpg://user:pw@db:5432/ledger",
        ],
    )
    def test_postgres_variants_use_asyncpg(self, url):
        assert normalize_database_url(url) == "postgresql+asyncpg://user:pw@db:5432/ledger"

    def test_other_urls_unchanged(self):
        assert normalize_database_url("sqlite+aiosqlite:///:memory:") == "sqlite+aiosqlite:///:memory:"


@pytest.mark.asyncio
async def test_create_all_creates_ledger_tables():
    engine = create_engine("sqlite+aiosqlite://")
    try:
        await create_all(engine)
        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        assert {"collectives", "transactions", "transaction_settlements", "expenses"} <= set(tables)
    finally:
        await engine.dispose()


def test_sessionmaker_keeps_objects_after_commit():
    engine = create_engine("sqlite+aiosqlite://")
    maker = create_sessionmaker(engine)
    assert maker.kw["expire_on_commit"] is False
