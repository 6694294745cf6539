"""
Index management: create, drop and (re)sync indexes from the database.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional

from .adapters import SEARCH_ADAPTERS
from .client import get_search_client
from .common import IndexName, format_index_name, parse_index_name
from .errors import InvalidIndexError

logger = logging.getLogger(__name__)

DEFAULT_SYNC_BATCH_SIZE = 5000


def parse_indexes(values: Optional[Iterable[str]] = None) -> List[IndexName]:
    """Validate index names given on the command line.

    Returns:
        The unique indexes in the given order, or every index when none is given

    Raises:
        InvalidIndexError: For an unknown index.
    """
    values = list(values or [])
    if not values:
        return list(IndexName)

    indexes: List[IndexName] = []
    for value in values:
        try:
            index = IndexName(value)
        except ValueError:
            raise InvalidIndexError(value) from None
        if index not in indexes:
            indexes.append(index)
    return indexes


async def create_index(index: IndexName, client: Any = None) -> None:
    client = client or get_search_client(throw_if_unavailable=True)
    adapter = SEARCH_ADAPTERS[index]
    await client.indices.create(index=format_index_name(index), body={"mappings": adapter.mappings})


async def remove_index(index: IndexName, throw_if_missing: bool = False, client: Any = None) -> None:
    client = client or get_search_client(throw_if_unavailable=True)
    if throw_if_missing:
        await client.indices.delete(index=format_index_name(index))
    else:
        await client.indices.delete(index=format_index_name(index), ignore=[404])


async def get_available_indexes(client: Any = None) -> List[IndexName]:
    """Get the known indexes that exist on the cluster."""
    client = client or get_search_client(throw_if_unavailable=True)
    response = await client.indices.get_alias(index="*")
    indexes = [parse_index_name(name) for name in response]
    return [index for index in IndexName if index in indexes]


async def sync_index(
    index: IndexName,
    from_date: Optional[datetime] = None,
    batch_size: int = DEFAULT_SYNC_BATCH_SIZE,
    client: Any = None,
    session_factory: Optional[Callable[[], Any]] = None,
) -> int:
    """Bulk-index the rows of an index's table.

    Args:
        index: Index to sync
        from_date: Only rows created (or deleted) after this date, everything by default
        batch_size: Rows per bulk request
        client: OpenSearch client
        session_factory: Callable returning an async session context manager

    Returns:
        Number of indexed documents
    """
    client = client or get_search_client(throw_if_unavailable=True)
    if session_factory is None:
        from fiscal_ledger.core.database.session import async_session_maker

        session_factory = async_session_maker

    adapter = SEARCH_ADAPTERS[index]
    index_name = format_index_name(index)
    logger.info(f"Syncing index {index.value} from {from_date.isoformat() if from_date else 'all time'}")

    indexed = 0
    async with session_factory() as session:
        if from_date is not None:
            deleted_ids = await adapter.find_deleted_ids(session, from_date)
            if deleted_ids:
                logger.info(f"Deleting {len(deleted_ids)} entries from {index.value}")
                await client.bulk(
                    body=[{"delete": {"_index": index_name, "_id": str(entity_id)}} for entity_id in deleted_ids]
                )

        offset = 0
        while True:
            entries = await adapter.find_entries_to_index(
                session, from_date=from_date, offset=offset, limit=batch_size
            )
            if not entries:
                break

            operations = []
            for entry in entries:
                operations.append({"index": {"_index": index_name, "_id": str(entry.id)}})
                operations.append(adapter.map_to_document(entry))
            await client.bulk(body=operations)

            indexed += len(entries)
            offset += batch_size
            logger.info(f"Indexed {indexed} entries in {index.value}")
            if len(entries) < batch_size:
                break

    return indexed
