"""
Postgres -> OpenSearch synchronization.

Triggers on every indexed table publish a JSON notification on the
``search-requests`` channel for each insert, update or delete. A dedicated
asyncpg connection LISTENs on that channel and feeds the batch processor.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import asyncpg

from fiscal_ledger.core.database.utils import normalize_database_url
from fiscal_ledger.core.monitoring import HandlerType, report_error, report_message
from fiscal_ledger.server.core.config import settings

from .adapters import SEARCH_ADAPTERS
from .batch_processor import SearchBatchProcessor
from .client import is_search_configured
from .errors import InvalidSearchRequestError
from .types import SearchRequest, SearchRequestPayload, SearchRequestType, parse_search_request

logger = logging.getLogger(__name__)

CHANNEL_NAME = "search-requests"
SHUTDOWN_TIMEOUT = 30

NOTIFY_FUNCTION_SQL = f"""
CREATE OR REPLACE FUNCTION notify_search_on_change()
RETURNS TRIGGER AS $$
DECLARE
    notification JSON;
BEGIN
    IF (TG_OP = 'INSERT') THEN
        notification = json_build_object('type', 'UPDATE', 'table', TG_TABLE_NAME, 'payload', json_build_object('id', NEW.id));
    ELSIF (TG_OP = 'UPDATE') THEN
        IF (OLD.deleted_at IS NULL AND NEW.deleted_at IS NOT NULL) THEN
            notification = json_build_object('type', 'DELETE', 'table', TG_TABLE_NAME, 'payload', json_build_object('id', NEW.id));
        ELSIF (OLD.deleted_at IS NOT NULL AND NEW.deleted_at IS NOT NULL) THEN
            RETURN NULL;
        ELSE
            notification = json_build_object('type', 'UPDATE', 'table', TG_TABLE_NAME, 'payload', json_build_object('id', NEW.id));
        END IF;
    ELSIF (TG_OP = 'DELETE') THEN
        notification = json_build_object('type', 'DELETE', 'table', TG_TABLE_NAME, 'payload', json_build_object('id', OLD.id));
    END IF;

    PERFORM pg_notify('{CHANNEL_NAME}', notification::text);
    RETURN NULL;
END;
$$ LANGUAGE plpgsql;
"""

TRIGGER_OPERATIONS = ("insert", "update", "delete")

_connection: Optional[Any] = None
_shutdown_task: Optional[asyncio.Task] = None


def get_setup_triggers_sql() -> str:
    statements = [NOTIFY_FUNCTION_SQL]
    for adapter in SEARCH_ADAPTERS.values():
        for operation in TRIGGER_OPERATIONS:
            statements.append(
                f'CREATE OR REPLACE TRIGGER {adapter.table}_{operation}_trigger '
                f'AFTER {operation.upper()} ON "{adapter.table}" '
                f"FOR EACH ROW EXECUTE FUNCTION notify_search_on_change();"
            )
    return "\n".join(statements)


def get_remove_triggers_sql() -> str:
    statements = []
    for adapter in SEARCH_ADAPTERS.values():
        for operation in TRIGGER_OPERATIONS:
            statements.append(f'DROP TRIGGER IF EXISTS {adapter.table}_{operation}_trigger ON "{adapter.table}";')
    statements.append("DROP FUNCTION IF EXISTS notify_search_on_change();")
    return "\n".join(statements)


def get_listener_dsn() -> str:
    """asyncpg expects a plain ``postgresql://`` URL."""
    return normalize_database_url(settings.database_url).replace("postgresql+asyncpg://", "postgresql://", 1)


async def setup_postgres_triggers(connection: Any) -> None:
    try:
        await connection.execute(get_setup_triggers_sql())
    except Exception as e:
        logger.error(f"Error setting up Postgres triggers: {e}")
        report_error(e, handler=HandlerType.SEARCH_SYNC_JOB)
        raise RuntimeError("Failed to setup Postgres triggers") from e


async def remove_postgres_triggers(connection: Any) -> None:
    await connection.execute(get_remove_triggers_sql())


def handle_notification(connection: Any, pid: int, channel: str, payload: str) -> None:
    """asyncpg listener callback."""
    try:
        request = parse_search_request(payload)
    except InvalidSearchRequestError:
        report_message(
            "Invalid search request",
            severity="error",
            handler=HandlerType.SEARCH_SYNC_JOB,
            extra={"event": payload},
        )
        return

    try:
        SearchBatchProcessor.get_instance().add_to_queue(request)
    except Exception as e:
        report_error(e, handler=HandlerType.SEARCH_SYNC_JOB)


async def start_postgres_sync(connection: Optional[Any] = None) -> Any:
    """Start the batch processor, LISTEN for notifications and install the triggers.

    Args:
        connection: asyncpg connection to use, a new one is opened by default

    Returns:
        The listening connection
    """
    global _connection, _shutdown_task
    processor = SearchBatchProcessor.get_instance()
    processor.start()

    _connection = connection or await asyncpg.connect(get_listener_dsn())
    _shutdown_task = None
    await _connection.add_listener(CHANNEL_NAME, handle_notification)
    await setup_postgres_triggers(_connection)

    logger.info("OpenSearch <-> Postgres sync job started")
    return _connection


async def _shutdown() -> None:
    global _connection
    connection = _connection
    if connection is not None:
        await connection.remove_listener(CHANNEL_NAME, handle_notification)
        await remove_postgres_triggers(connection)
    processor = SearchBatchProcessor.current_instance()
    if processor is not None:
        await processor.flush_and_close()
    if connection is not None:
        await connection.close()
        _connection = None
    logger.info("OpenSearch <-> Postgres sync job shutdown complete")


async def stop_postgres_sync() -> None:
    """Stop listening, remove the triggers and flush the queue.

    Calling it again while (or after) shutting down waits on the same shutdown.
    """
    global _shutdown_task
    if _shutdown_task is None and _connection is None and SearchBatchProcessor.current_instance() is None:
        logger.debug("OpenSearch <-> Postgres sync job was never started, nothing to stop")
        return
    if _shutdown_task is None:
        logger.info("Shutting down OpenSearch <-> Postgres sync job")
        _shutdown_task = asyncio.ensure_future(asyncio.wait_for(_shutdown(), timeout=SHUTDOWN_TIMEOUT))

    try:
        await asyncio.shield(_shutdown_task)
    except asyncio.TimeoutError:
        logger.error("OpenSearch <-> Postgres sync job took too long to shutdown, forcing exit")


def full_account_re_index(collective_id: int) -> None:
    """Re-index every entry related to an account, in every index."""
    if not is_search_configured():
        logger.debug(f"OpenSearch is not configured, skipping {collective_id} full account re-index")
        return

    SearchBatchProcessor.get_instance().add_to_queue(
        SearchRequest(
            type=SearchRequestType.FULL_ACCOUNT_RE_INDEX,
            payload=SearchRequestPayload(id=collective_id),
        )
    )
