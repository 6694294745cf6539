from __future__ import annotations

import os
from typing import Any, AsyncGenerator, Iterable

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel.pool import StaticPool

# Use in-memory SQLite for testing, set before importing the settings
TEST_DATABASE_URL = "sqlite+aiosqlite://"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ.pop("OPENSEARCH_URL", None)

from fiscal_ledger.core.database import create_all  # noqa: E402
from fiscal_ledger.core.database.entities import Collective  # noqa: E402
from fiscal_ledger.core.database.repositories import build_ledger_repos  # noqa: E402
from fiscal_ledger.ledger.double_entry import LedgerService  # noqa: E402
from fiscal_ledger.ledger.fx import FxRateProvider  # noqa: E402
from fiscal_ledger.server.core.config import PlatformConfig  # noqa: E402

PLATFORM_ID = 8686
HOST_ID = 10
COLLECTIVE_ID = 20
USER_ID = 30


@pytest.fixture(autouse=True)
def _global_offline_http_guard(monkeypatch: pytest.MonkeyPatch):
    allowed_prefixes: Iterable[str] = (
        "http://mock",
        "https://mock",
        "http://localhost",
        "http://127.0.0.1",
        "/",  # Allow relative paths (used by ASGI transport)
    )

    orig_sync = httpx._client.Client.request
    orig_async = httpx._client.AsyncClient.request

    def _is_allowed(url_str: str) -> bool:
        return any(url_str.startswith(p) for p in allowed_prefixes)

    def offline_sync(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return orig_sync(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard: {url_str}")

    async def offline_async(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return await orig_async(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard (async): {url_str}")

    monkeypatch.setattr(httpx._client.Client, "request", offline_sync, raising=True)
    monkeypatch.setattr(httpx._client.AsyncClient, "request", offline_async, raising=True)


@pytest_asyncio.fixture
async def engine():
    """Create an in-memory SQLite engine with every table."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_all(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def repos(session: AsyncSession):
    return build_ledger_repos(session)


@pytest.fixture
def platform_config() -> PlatformConfig:
    return PlatformConfig(collective_id=PLATFORM_ID, currency="USD", settlement_min_amount=1000)


@pytest.fixture
def fx() -> FxRateProvider:
    return FxRateProvider(None, platform_collective_id=PLATFORM_ID, platform_currency="USD")


@pytest.fixture
def ledger(repos, fx, platform_config) -> LedgerService:
    return LedgerService(repos, fx, platform_config)


async def add_collective(session: AsyncSession, **values: Any) -> Collective:
    collective = Collective(**values)
    session.add(collective)
    await session.flush()
    return collective


@pytest_asyncio.fixture
async def accounts(session: AsyncSession):
    """Platform, a USD host taking 15% of host fees, one hosted collective and a contributor."""
    platform = await add_collective(
        session, id=PLATFORM_ID, slug="platform", name="Platform", type="ORGANIZATION", currency="USD",
        is_active=True, is_host_account=True,
    )
    host = await add_collective(
        session, id=HOST_ID, slug="host", name="Fiscal Host", type="ORGANIZATION", currency="USD",
        is_active=True, is_host_account=True, host_fee_percent=5, host_fee_share_percent=15,
    )
    collective = await add_collective(
        session, id=COLLECTIVE_ID, slug="babel", name="Babel", type="COLLECTIVE", currency="USD",
        description="A tower of languages", tags=["open source"],
        host_collective_id=HOST_ID, is_active=True, host_fee_percent=5,
    )
    user = await add_collective(session, id=USER_ID, slug="xdamman", name="Xavier", type="USER", currency="USD")
    return {"platform": platform, "host": host, "collective": collective, "user": user}


@pytest.fixture
def contribution_payload():
    """Build the payload of a $100 contribution from the user to the collective."""

    def _build(**overrides: Any) -> dict:
        payload = {
            "collective_id": COLLECTIVE_ID,
            "from_collective_id": USER_ID,
            "created_by_user_id": 1,
            "order_id": 1,
            "description": "Monthly contribution",
            "amount": 10000,
            "currency": "USD",
        }
        payload.update(overrides)
        return payload

    return _build


@pytest.fixture
def balance():
    """Sum the net amounts of an account over the given rows, the way balances are read."""

    def _balance(rows, collective_id: int) -> int:
        return sum(r.net_amount_in_collective_currency or 0 for r in rows if r.collective_id == collective_id)

    return _balance
