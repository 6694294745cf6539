"""Process-wide OpenSearch client."""

from __future__ import annotations

import logging
from typing import Optional

from opensearchpy import AsyncOpenSearch

from fiscal_ledger.server.core.config import settings

from .errors import SearchNotConfiguredError

logger = logging.getLogger(__name__)

_client: Optional[AsyncOpenSearch] = None


def is_search_configured() -> bool:
    return settings.opensearch.is_configured


def get_search_client(throw_if_unavailable: bool = False) -> Optional[AsyncOpenSearch]:
    """Get the shared client, creating it on first use.

    Returns:
        The client, or None when OpenSearch is not configured

    Raises:
        SearchNotConfiguredError: If not configured and ``throw_if_unavailable``.
    """
    global _client
    config = settings.opensearch
    if not config.is_configured:
        if throw_if_unavailable:
            raise SearchNotConfiguredError()
        return None

    if _client is None:
        http_auth = (config.username, config.password) if config.username else None
        _client = AsyncOpenSearch(hosts=[config.url], http_auth=http_auth)
        logger.info("OpenSearch client created")
    return _client


async def close_search_client() -> None:
    global _client
    if _client is not None:
        await _client.close()
        _client = None
