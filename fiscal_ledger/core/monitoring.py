"""
Logfire tracing and error reporting.

The API, the database layer and outbound HTTP calls are traced through Pydantic
Logfire when it is enabled. Background work (search sync, split migrations,
host settlements) reports failures here instead of letting them stop the job:
reports always reach the standard logger and are forwarded to Logfire when it
has been initialized.
"""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI

logger = logging.getLogger(__name__)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


LOGFIRE_ENABLED = _flag("LOGFIRE_ENABLED", "false")
LOGFIRE_TOKEN = os.getenv("LOGFIRE_TOKEN", "")
LOGFIRE_ENVIRONMENT = os.getenv("LOGFIRE_ENVIRONMENT", "development")
LOGFIRE_SERVICE_NAME = os.getenv("LOGFIRE_SERVICE_NAME", "fiscal-ledger")
LOGFIRE_SERVICE_VERSION = os.getenv("LOGFIRE_SERVICE_VERSION", "0.0.0")

LOGFIRE_TRACE_SQLALCHEMY = _flag("LOGFIRE_TRACE_SQLALCHEMY", "true")
LOGFIRE_TRACE_HTTPX = _flag("LOGFIRE_TRACE_HTTPX", "true")
LOGFIRE_TRACE_FASTAPI = _flag("LOGFIRE_TRACE_FASTAPI", "true")

_logfire_initialized = False


class HandlerType(str, Enum):
    """Origin of a reported error, used to group reports."""

    SEARCH_SYNC_JOB = "SEARCH_SYNC_JOB"
    LEDGER_MIGRATION = "LEDGER_MIGRATION"
    HOST_SETTLEMENT = "HOST_SETTLEMENT"
    API = "API"


def _instrument(logfire: Any, label: str, method: str, **kwargs: Any) -> None:
    try:
        getattr(logfire, method)(**kwargs)
    except Exception as e:
        logger.warning(f"Failed to instrument {label}: {e}")
        return
    logger.info(f"Logfire: {label} instrumentation enabled")


def initialize_logfire(app: FastAPI | None = None) -> None:
    """
    Configure Logfire and instrument SQLAlchemy, httpx and (given ``app``) FastAPI.

    Does nothing unless ``LOGFIRE_ENABLED`` is set and a ``LOGFIRE_TOKEN`` is present.
    A failing instrumentation is logged and skipped; a failing ``configure`` leaves
    Logfire off for the process.
    """
    global _logfire_initialized

    if not LOGFIRE_ENABLED:
        logger.info("Logfire monitoring is disabled. Set LOGFIRE_ENABLED=true to enable.")
        return
    if not LOGFIRE_TOKEN:
        logger.warning("LOGFIRE_ENABLED is set without LOGFIRE_TOKEN; Logfire stays off.")
        return

    try:
        import logfire

        logfire.configure(
            token=LOGFIRE_TOKEN,
            service_name=LOGFIRE_SERVICE_NAME,
            service_version=LOGFIRE_SERVICE_VERSION,
            environment=LOGFIRE_ENVIRONMENT,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Logfire: {e}", exc_info=True)
        return

    if LOGFIRE_TRACE_SQLALCHEMY:
        _instrument(logfire, "SQLAlchemy", "instrument_sqlalchemy")
    if LOGFIRE_TRACE_HTTPX:
        _instrument(logfire, "HTTPX", "instrument_httpx")
    if LOGFIRE_TRACE_FASTAPI and app is not None:
        _instrument(logfire, "FastAPI", "instrument_fastapi", app=app)

    _logfire_initialized = True
    logger.info(f"Logfire monitoring initialized: environment={LOGFIRE_ENVIRONMENT}, service={LOGFIRE_SERVICE_NAME}")


def _context(handler: Optional[HandlerType], extra: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    context: Dict[str, Any] = dict(extra or {})
    if handler is not None:
        context["handler"] = handler.value
    return context


def report_error(
    error: BaseException,
    handler: Optional[HandlerType] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Report an exception caught by a background job or a request handler.

    Args:
        error: The exception to report
        handler: Origin of the error
        extra: Additional context serialized with the report
    """
    context = _context(handler, extra)
    logger.error(f"{type(error).__name__}: {error}", exc_info=error, extra={"report": context})

    if not _logfire_initialized:
        return

    try:
        import logfire

        logfire.exception(f"{type(error).__name__}: {error}", _exc_info=error, **context)
    except Exception:
        logger.debug("Could not forward error report to Logfire")


def report_message(
    message: str,
    severity: str = "warning",
    handler: Optional[HandlerType] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Report a notable condition that is not an exception.

    Args:
        message: Human readable description
        severity: One of debug, info, warning, error
        handler: Origin of the message
        extra: Additional context serialized with the report
    """
    context = _context(handler, extra)
    level = logging.getLevelName(severity.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    logger.log(level, message, extra={"report": context})

    if not _logfire_initialized:
        return

    try:
        import logfire

        log_method = getattr(logfire, severity.lower(), logfire.warn)
        log_method(message, **context)
    except Exception:
        logger.debug("Could not forward message report to Logfire")
