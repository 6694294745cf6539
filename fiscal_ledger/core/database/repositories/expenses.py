"""Expense repository implementation."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from ..entities.expenses import Expense
from .base import AsyncBaseRepository, QueryBuilder


class ExpenseRepository(AsyncBaseRepository[Expense]):
    """Repository for expenses and settlement invoices."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Expense)

    async def get_by_id(self, expense_id: int) -> Optional[Expense]:
        stmt = select(Expense).where(Expense.id == expense_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Expense]:
        stmt = select(Expense).where(Expense.deleted_at.is_(None))  # type: ignore[union-attr]
        if filters:
            stmt = QueryBuilder.apply_filters(stmt, Expense, filters)
        stmt = stmt.order_by(Expense.created_at.desc(), Expense.id.desc())  # type: ignore[union-attr]
        stmt = QueryBuilder.apply_pagination(stmt, limit, offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
