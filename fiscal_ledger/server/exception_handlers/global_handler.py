"""
HTTP error mapping for the ledger API.

Ledger and search errors carry their own ``status_code`` and are answered as
``{"detail", "error_type"}``. Anything else becomes a 500 with an ``error_id``
that is also logged and forwarded to monitoring.
"""

import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fiscal_ledger.core.logging_config import get_logger
from fiscal_ledger.core.monitoring import HandlerType, report_error
from fiscal_ledger.ledger.errors import LedgerError
from fiscal_ledger.search.errors import SearchError

logger = get_logger(__name__)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log an unexpected failure with its request context and answer 500."""
    error_id = id(exc)

    logger.error(
        f"Unhandled exception [{error_id}] in {request.method} {request.url.path}: {str(exc)}",
        exc_info=True,
        extra={
            "error_id": error_id,
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
            "client": request.client.host if request.client else "unknown",
            "error_type": type(exc).__name__,
            "traceback": traceback.format_exc(),
        },
    )
    report_error(exc, handler=HandlerType.API, extra={"error_id": error_id, "path": request.url.path})

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_id": error_id,
            "error_type": type(exc).__name__,
        },
    )


async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map ledger and search errors to their HTTP status."""
    status_code = getattr(exc, "status_code", 400)
    logger.info(f"{type(exc).__name__} in {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LedgerError, domain_exception_handler)
    app.add_exception_handler(SearchError, domain_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    logger.debug("Exception handlers registered successfully")
