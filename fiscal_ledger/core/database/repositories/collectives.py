"""
Collective repository implementation.

Provides account lookups for the ledger: hosts of a collective and hosts with
ledger activity in a period (used by the monthly settlement).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from ..entities.collectives import Collective
from ..entities.transactions import Transaction
from .base import AsyncBaseRepository, QueryBuilder


class CollectiveRepository(AsyncBaseRepository[Collective]):
    """Repository for ledger accounts using SQLModel."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Collective)

    async def get_by_id(self, collective_id: int) -> Optional[Collective]:
        stmt = select(Collective).where(Collective.id == collective_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_slug(self, slug: str) -> Optional[Collective]:
        stmt = select(Collective).where(Collective.slug == slug)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Collective]:
        stmt = select(Collective).where(Collective.deleted_at.is_(None))  # type: ignore[union-attr]
        if filters:
            stmt = QueryBuilder.apply_filters(stmt, Collective, filters)
        stmt = stmt.order_by(Collective.id)  # type: ignore[arg-type]
        stmt = QueryBuilder.apply_pagination(stmt, limit, offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_host(self, collective: Collective) -> Optional[Collective]:
        """Get the host of a collective.

        A host account is its own host.
        """
        if collective.is_host_account and not collective.host_collective_id:
            return collective
        if not collective.host_collective_id:
            return None
        if collective.host_collective_id == collective.id:
            return collective
        return await self.get_by_id(collective.host_collective_id)

    async def find_hosts_with_activity(
        self,
        start: datetime,
        end: datetime,
        exclude_ids: Optional[List[int]] = None,
        host_id: Optional[int] = None,
    ) -> List[Collective]:
        """Get host accounts that have ledger rows created in ``[start, end)``.

        Args:
            start: Inclusive lower bound
            end: Exclusive upper bound
            exclude_ids: Host ids to leave out (e.g. the platform itself)
            host_id: Restrict to a single host

        Returns:
            Hosts ordered by id
        """
        active_hosts = (
            select(Transaction.host_collective_id)
            .where(Transaction.created_at >= start)
            .where(Transaction.created_at < end)
            .where(Transaction.host_collective_id.is_not(None))  # type: ignore[union-attr]
            .distinct()
        )
        stmt = (
            select(Collective)
            .where(Collective.is_host_account.is_(True))  # type: ignore[attr-defined]
            .where(Collective.id.in_(active_hosts))  # type: ignore[union-attr]
            .where(Collective.deleted_at.is_(None))  # type: ignore[union-attr]
        )
        if exclude_ids:
            stmt = stmt.where(Collective.id.not_in(exclude_ids))  # type: ignore[union-attr]
        if host_id is not None:
            stmt = stmt.where(Collective.id == host_id)
        stmt = stmt.order_by(Collective.id)  # type: ignore[arg-type]
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
