from __future__ import annotations

from typing import Any, Dict, List

from fiscal_ledger.core.database.entities.collectives import Collective

from ..common import IndexName
from .base import SearchModelAdapter, format_date


class CollectivesAdapter(SearchModelAdapter):
    index = IndexName.COLLECTIVES
    model = Collective
    mappings = {
        "properties": {
            "id": {"type": "keyword"},
            "slug": {"type": "keyword"},
            "name": {"type": "text"},
            "type": {"type": "keyword"},
            "description": {"type": "text"},
            "tags": {"type": "keyword"},
            "currency": {"type": "keyword"},
            "isActive": {"type": "boolean"},
            "hasMoneyManagement": {"type": "boolean"},
            "HostCollectiveId": {"type": "keyword"},
            "ParentCollectiveId": {"type": "keyword"},
            "createdAt": {"type": "date"},
        }
    }
    weights = {
        "id": 0,
        "slug": 50,
        "name": 50,
        "description": 10,
        "tags": 5,
        "type": 0,
        "currency": 0,
        "HostCollectiveId": 0,
        "ParentCollectiveId": 0,
    }

    def related_collective_columns(self) -> List[Any]:
        return [Collective.id, Collective.host_collective_id, Collective.parent_collective_id]

    def map_to_document(self, entry: Collective) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "slug": entry.slug,
            "name": entry.name,
            "type": entry.type,
            "description": entry.description,
            "tags": list(entry.tags or []),
            "currency": entry.currency,
            "isActive": entry.is_active,
            "hasMoneyManagement": entry.is_host_account,
            "HostCollectiveId": entry.host_collective_id,
            "ParentCollectiveId": entry.parent_collective_id,
            "createdAt": format_date(entry.created_at),
        }
