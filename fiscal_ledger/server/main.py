"""
Main Application Entry Point.

This module initializes the FastAPI application, configures middleware (CORS),
monitoring and exception handlers, and includes all API routers.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fiscal_ledger.core.logging_config import get_logger, setup_logging
from fiscal_ledger.core.monitoring import initialize_logfire

from .api.v1 import health, search, settlements, transactions
from .core import constant
from .core.config import settings
from .exception_handlers import setup_exception_handlers
from .services.deps import close_fx_provider

setup_logging(log_level=settings.log_level)
logger = get_logger(__name__)


def is_search_sync_enabled() -> bool:
    return settings.opensearch.is_configured and settings.opensearch.sync_enabled


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events.

    Starts the Postgres -> OpenSearch sync job when search is configured and
    enabled, and stops it on shutdown.
    """
    logger.info("Starting up fiscal-ledger server...")
    sync_started = False
    if is_search_sync_enabled():
        from fiscal_ledger.search.sync_postgres import start_postgres_sync

        try:
            await start_postgres_sync()
            sync_started = True
        except Exception as e:
            logger.error(f"Search sync failed to start: {e}", exc_info=True)

    yield

    logger.info("Shutting down fiscal-ledger server...")
    if sync_started:
        from fiscal_ledger.search.sync_postgres import stop_postgres_sync

        await stop_postgres_sync()
    await close_fx_provider()


app = FastAPI(
    title=constant.PROJECT_NAME,
    description="""
    fiscal-ledger Server API

    Double-entry ledger of a fiscal-hosting platform: transaction groups, refunds,
    host settlements and search over collectives, transactions and expenses.
    """,
    version=constant.API_VERSION,
    openapi_url=f"{constant.API_V1_STR}/openapi.json",
    docs_url=f"{constant.API_V1_STR}/docs",
    redoc_url=f"{constant.API_V1_STR}/redoc",
    lifespan=lifespan,
)

initialize_logfire(app)

cors = settings.cors
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors.origins,
    allow_credentials=cors.allow_credentials,
    allow_methods=cors.allow_methods,
    allow_headers=cors.allow_headers,
)

setup_exception_handlers(app)

app.include_router(health.router, prefix=constant.API_V1_STR, tags=["health"])
app.include_router(transactions.router, prefix=f"{constant.API_V1_STR}/transactions", tags=["transactions"])
app.include_router(settlements.router, prefix=f"{constant.API_V1_STR}/settlements", tags=["settlements"])
app.include_router(search.router, prefix=f"{constant.API_V1_STR}/search", tags=["search"])
