"""
Shared repository plumbing for the ledger tables.

Repositories flush their writes but never commit: the ledger writes several
pairs for a single economic event, and the caller owning the session decides
when the whole unit of work is committed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

RowType = TypeVar("RowType", bound=SQLModel)


class AsyncBaseRepository(ABC, Generic[RowType]):
    """Async access to one ledger table, bound to the caller's session."""

    def __init__(self, session: AsyncSession, model: Type[RowType]) -> None:
        self.session = session
        self.model = model

    async def _flush(self, row: RowType) -> RowType:
        self.session.add(row)
        await self.session.flush()
        # Pick up server defaults such as the autoincrement id and timestamps.
        await self.session.refresh(row)
        return row

    async def create(self, row: RowType) -> RowType:
        """Insert ``row`` into the open unit of work and return it with its id assigned."""
        return await self._flush(row)

    async def update(self, row: RowType) -> RowType:
        """Flush in-place edits (settlement status, ``data`` merges, migrated amounts)."""
        return await self._flush(row)

    @abstractmethod
    async def get_by_id(self, row_id: Any) -> Optional[RowType]:
        """Fetch by primary key, ``None`` when missing."""

    @abstractmethod
    async def list(
        self, limit: Optional[int] = None, offset: Optional[int] = None, filters: Optional[Dict[str, Any]] = None
    ) -> List[RowType]:
        """Page through the table, narrowed by equality ``filters``."""


class QueryBuilder:
    """Small helpers shared by the ``list`` implementations."""

    @staticmethod
    def apply_filters(stmt, model: Type[RowType], filters: Dict[str, Any]):
        # Unknown columns and ``None`` values are skipped so API query params can be passed as-is.
        for column, value in filters.items():
            if value is None or not hasattr(model, column):
                continue
            stmt = stmt.where(getattr(model, column) == value)
        return stmt

    @staticmethod
    def apply_pagination(stmt, limit: Optional[int], offset: Optional[int]):
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)
        return stmt
