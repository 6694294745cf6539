from __future__ import annotations

from enum import Enum
from typing import Optional

from fiscal_ledger.server.core.config import settings


class IndexName(str, Enum):
    COLLECTIVES = "collectives"
    TRANSACTIONS = "transactions"
    EXPENSES = "expenses"


def format_index_name(index: str, prefix: Optional[str] = None) -> str:
    """Add the configured ``OPENSEARCH_INDEXES_PREFIX`` to an index name."""
    name = index.value if isinstance(index, IndexName) else index
    prefix = prefix if prefix is not None else settings.opensearch.indexes_prefix
    return f"{prefix}_{name}" if prefix else name


def parse_index_name(real_name: str, prefix: Optional[str] = None) -> Optional[IndexName]:
    """Get the index behind a prefixed name, None for foreign indexes."""
    prefix = prefix if prefix is not None else settings.opensearch.indexes_prefix
    if prefix:
        if not real_name.startswith(f"{prefix}_"):
            return None
        real_name = real_name[len(prefix) + 1 :]
    try:
        return IndexName(real_name)
    except ValueError:
        return None
