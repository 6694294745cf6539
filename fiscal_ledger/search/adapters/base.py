"""
Base search adapter.

An adapter ties one index to one table: it knows the index mappings, the
weight of each searchable field, how to load the rows to index and how to turn
a row into a document.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Type

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from ..common import IndexName


class SearchModelAdapter(ABC):
    index: IndexName
    model: Type[SQLModel]
    mappings: Dict[str, Any]
    # Fields not listed have a weight of 1, a weight of 0 excludes the field from search
    weights: Dict[str, int] = {}

    @property
    def table(self) -> str:
        return self.model.__tablename__  # type: ignore[attr-defined]

    @abstractmethod
    def related_collective_columns(self) -> List[Any]:
        """Columns linking a row to an account, used for full account re-indexes."""

    @abstractmethod
    def map_to_document(self, entry: Any) -> Dict[str, Any]:
        """Map a row to an OpenSearch document."""

    async def find_entries_to_index(
        self,
        session: AsyncSession,
        ids: Optional[Iterable[int]] = None,
        related_to_collective_ids: Optional[Iterable[int]] = None,
        from_date: Optional[datetime] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Any]:
        """Load the non-deleted rows to index, ordered by id.

        Args:
            session: Database session
            ids: Only these rows
            related_to_collective_ids: Only rows linked to these accounts
            from_date: Only rows created after this date
            offset: Rows to skip
            limit: Maximum rows to return
        """
        model = self.model
        stmt = select(model).where(model.deleted_at.is_(None))  # type: ignore[attr-defined]
        if ids is not None:
            stmt = stmt.where(model.id.in_(list(ids)))  # type: ignore[attr-defined]
        if related_to_collective_ids is not None:
            account_ids = list(related_to_collective_ids)
            stmt = stmt.where(or_(*[column.in_(account_ids) for column in self.related_collective_columns()]))
        if from_date is not None:
            stmt = stmt.where(model.created_at >= from_date)  # type: ignore[attr-defined]
        stmt = stmt.order_by(model.id).offset(offset)  # type: ignore[attr-defined]
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def find_deleted_ids(self, session: AsyncSession, from_date: datetime) -> List[int]:
        """Get the ids of rows soft-deleted after ``from_date``."""
        model = self.model
        stmt = select(model.id).where(model.deleted_at >= from_date)  # type: ignore[attr-defined]
        result = await session.execute(stmt)
        return list(result.scalars().all())

    def is_searchable_field(self, field: str) -> bool:
        field_type = self.mappings["properties"].get(field, {}).get("type")
        return self.weights.get(field, 1) != 0 and field_type in ("keyword", "text")

    def searchable_fields(self) -> List[str]:
        """Searchable fields with their weight, e.g. ``name^50``."""
        fields = []
        for field in self.mappings["properties"]:
            if not self.is_searchable_field(field):
                continue
            weight = self.weights.get(field, 1)
            fields.append(field if weight == 1 else f"{field}^{weight}")
        return fields


def format_date(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
