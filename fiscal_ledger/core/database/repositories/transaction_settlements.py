"""
Transaction settlement repository implementation.

Settlements are keyed by (transaction_group, kind). The pending-debt query joins
debt rows of a host with their settlement to find what must be invoiced.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import and_, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from ..base import utc_now
from ..entities.transaction_settlements import TransactionSettlement
from ..entities.transactions import Transaction
from .base import AsyncBaseRepository, QueryBuilder


class TransactionSettlementRepository(AsyncBaseRepository[TransactionSettlement]):
    """Repository for debt settlements using SQLModel."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, TransactionSettlement)

    async def get_by_id(self, key: tuple[str, str]) -> Optional[TransactionSettlement]:
        """Get a settlement by its composite key ``(transaction_group, kind)``."""
        transaction_group, kind = key
        return await self.get(transaction_group, kind)

    async def get(self, transaction_group: str, kind: str) -> Optional[TransactionSettlement]:
        stmt = (
            select(TransactionSettlement)
            .where(TransactionSettlement.transaction_group == transaction_group)
            .where(TransactionSettlement.kind == kind)
            .where(TransactionSettlement.deleted_at.is_(None))  # type: ignore[union-attr]
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[TransactionSettlement]:
        """List settlements.

        Besides the column filters, ``host_id`` restricts the result to settlements
        of debts owed by that host.
        """
        filters = dict(filters or {})
        host_id = filters.pop("host_id", None)
        stmt = select(TransactionSettlement).where(TransactionSettlement.deleted_at.is_(None))  # type: ignore[union-attr]
        if host_id is not None:
            debt_groups = (
                select(Transaction.transaction_group)
                .where(Transaction.collective_id == host_id)
                .where(Transaction.is_debt.is_(True))  # type: ignore[attr-defined]
            )
            stmt = stmt.where(TransactionSettlement.transaction_group.in_(debt_groups))  # type: ignore[attr-defined]
        if filters:
            stmt = QueryBuilder.apply_filters(stmt, TransactionSettlement, filters)
        stmt = stmt.order_by(TransactionSettlement.created_at.desc())  # type: ignore[attr-defined]
        stmt = QueryBuilder.apply_pagination(stmt, limit, offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_pending_debts(
        self,
        host_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        kinds: Optional[Sequence[str]] = None,
    ) -> List[Transaction]:
        """Get the debt rows of a host whose settlement is not SETTLED.

        Args:
            host_id: Host owing the debts
            start: Optional inclusive lower bound on ``created_at``
            end: Optional exclusive upper bound on ``created_at``
            kinds: Debt kinds to consider, all debts by default

        Returns:
            Debt transactions ordered by creation date
        """
        stmt = (
            select(Transaction)
            .join(
                TransactionSettlement,
                and_(
                    TransactionSettlement.transaction_group == Transaction.transaction_group,
                    TransactionSettlement.kind == Transaction.kind,
                ),
            )
            .where(Transaction.collective_id == host_id)
            .where(Transaction.is_debt.is_(True))  # type: ignore[attr-defined]
            .where(Transaction.deleted_at.is_(None))  # type: ignore[union-attr]
            .where(TransactionSettlement.status != "SETTLED")
            .where(TransactionSettlement.deleted_at.is_(None))  # type: ignore[union-attr]
        )
        if start is not None:
            stmt = stmt.where(Transaction.created_at >= start)
        if end is not None:
            stmt = stmt.where(Transaction.created_at < end)
        if kinds:
            stmt = stmt.where(Transaction.kind.in_(list(kinds)))  # type: ignore[union-attr]
        stmt = stmt.order_by(Transaction.created_at, Transaction.id)  # type: ignore[arg-type]
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def update_status(
        self, keys: Iterable[tuple[str, str]], status: str, expense_id: Optional[int] = None
    ) -> int:
        """Set the status (and optionally the invoice) of several settlements.

        Returns:
            Number of settlements updated
        """
        keys = list(keys)
        if not keys:
            return 0
        values: Dict[str, Any] = {"status": status, "updated_at": utc_now()}
        if expense_id is not None:
            values["expense_id"] = expense_id
        conditions = [
            and_(TransactionSettlement.transaction_group == group, TransactionSettlement.kind == kind)
            for group, kind in keys
        ]
        stmt = (
            update(TransactionSettlement)
            .where(or_(*conditions))
            .where(TransactionSettlement.deleted_at.is_(None))  # type: ignore[union-attr]
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount or 0

    async def mark_as_invoiced(self, transactions: Iterable[Transaction], expense_id: int) -> int:
        """Move the settlements of the given debt rows to INVOICED and link the invoice."""
        keys = {(t.transaction_group, t.kind) for t in transactions if t.kind}
        return await self.update_status(sorted(keys), "INVOICED", expense_id=expense_id)
