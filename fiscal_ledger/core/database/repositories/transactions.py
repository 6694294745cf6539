"""
Transaction repository interface and implementation.

This module provides data access operations for the double-entry ledger,
including lookups of related pairs inside a transaction group and the
selections used by the split migrations.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from ..entities.transactions import Transaction
from .base import AsyncBaseRepository, QueryBuilder


class TransactionRepository(AsyncBaseRepository[Transaction]):
    """Repository for ledger rows using SQLModel."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Transaction)

    async def get_by_id(self, transaction_id: int) -> Optional[Transaction]:
        stmt = select(Transaction).where(Transaction.id == transaction_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Transaction]:
        """List transactions, most recent first.

        Args:
            limit: Maximum records to return
            offset: Records to skip
            filters: Field filters (collective_id, host_collective_id, kind, type, transaction_group)

        Returns:
            List of Transaction instances
        """
        stmt = select(Transaction).where(Transaction.deleted_at.is_(None))  # type: ignore[union-attr]
        if filters:
            stmt = QueryBuilder.apply_filters(stmt, Transaction, filters)
        stmt = stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc())  # type: ignore[union-attr]
        stmt = QueryBuilder.apply_pagination(stmt, limit, offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_ids(self, ids: Iterable[int]) -> List[Transaction]:
        ids = list(ids)
        if not ids:
            return []
        stmt = select(Transaction).where(Transaction.id.in_(ids)).order_by(Transaction.id)  # type: ignore[union-attr]
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_group(self, transaction_group: str) -> List[Transaction]:
        """Get every row of a transaction group in insertion order."""
        stmt = (
            select(Transaction)
            .where(Transaction.transaction_group == transaction_group)
            .where(Transaction.deleted_at.is_(None))  # type: ignore[union-attr]
            .order_by(Transaction.id)  # type: ignore[arg-type]
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_related(
        self,
        transaction: Transaction,
        kind: Optional[str] = None,
        type: Optional[str] = None,
        is_debt: Optional[bool] = None,
    ) -> Optional[Transaction]:
        """Find a row of the same group.

        Kind and type default to the ones of the given transaction. Debt rows are
        only returned when ``is_debt`` is True.
        """
        stmt = (
            select(Transaction)
            .where(Transaction.transaction_group == transaction.transaction_group)
            .where(Transaction.type == (type or transaction.type))
            .where(Transaction.kind == (kind or transaction.kind))
            .where(Transaction.deleted_at.is_(None))  # type: ignore[union-attr]
        )
        if is_debt:
            stmt = stmt.where(Transaction.is_debt.is_(True))  # type: ignore[attr-defined]
        else:
            stmt = stmt.where(or_(Transaction.is_debt.is_(False), Transaction.is_debt.is_(None)))  # type: ignore[attr-defined]
        stmt = stmt.order_by(Transaction.id).limit(1)  # type: ignore[arg-type]
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_opposite(self, transaction: Transaction) -> Optional[Transaction]:
        opposite_type = "DEBIT" if transaction.type == "CREDIT" else "CREDIT"
        return await self.get_related(transaction, type=opposite_type, is_debt=transaction.is_debt)

    async def get_refund_transaction(self, transaction: Transaction) -> Optional[Transaction]:
        if not transaction.refund_transaction_id:
            return None
        return await self.get_by_id(transaction.refund_transaction_id)

    async def find_by_groups_and_kinds(self, pairs: Sequence[tuple[str, str]]) -> List[Transaction]:
        """Get every row matching one of the (transaction_group, kind) pairs, ordered by id."""
        if not pairs:
            return []
        conditions = [
            (Transaction.transaction_group == group) & (Transaction.kind == kind) for group, kind in pairs
        ]
        stmt = select(Transaction).where(or_(*conditions)).order_by(Transaction.id)  # type: ignore[arg-type]
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_contributions(self, transaction_groups: Iterable[str]) -> List[Transaction]:
        """Get the non-debt CONTRIBUTION rows of the given groups."""
        groups = sorted(set(transaction_groups))
        if not groups:
            return []
        stmt = (
            select(Transaction)
            .where(Transaction.transaction_group.in_(groups))  # type: ignore[attr-defined]
            .where(Transaction.kind == "CONTRIBUTION")
            .where(or_(Transaction.is_debt.is_(False), Transaction.is_debt.is_(None)))  # type: ignore[attr-defined]
            .where(Transaction.deleted_at.is_(None))  # type: ignore[union-attr]
            .order_by(Transaction.id)  # type: ignore[arg-type]
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Split migrations
    # ------------------------------------------------------------------

    def _to_split_statement(self, column: str, start_date: datetime):
        field = getattr(Transaction, column)
        return (
            select(Transaction)
            .where(field.is_not(None))
            .where(field != 0)
            .where(Transaction.created_at >= start_date)
            .where(or_(Transaction.is_refund.is_(False), Transaction.is_refund.is_(None)))  # type: ignore[attr-defined]
            .where(Transaction.deleted_at.is_(None))  # type: ignore[union-attr]
        )

    async def find_to_split(self, column: str, start_date: datetime) -> List[Transaction]:
        """Get non-refund rows created after ``start_date`` with a non-zero ``column``.

        Args:
            column: Legacy fee column name, e.g. ``host_fee_in_host_currency``
            start_date: Lower bound on ``created_at``

        Returns:
            Rows ordered from the most recent
        """
        stmt = self._to_split_statement(column, start_date).order_by(
            Transaction.created_at.desc(), Transaction.id  # type: ignore[union-attr]
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    def _migration_condition(self, field: str, timestamp: str):
        value = Transaction.data[field].as_string()  # type: ignore[index]
        if timestamp == "ALL":
            return value.is_not(None)
        return value == timestamp

    async def find_migrated(self, field: str, timestamp: str, start_date: datetime) -> List[Transaction]:
        """Get rows stamped by a split migration.

        Args:
            field: Data key holding the migration timestamp
            timestamp: Migration timestamp, or ``ALL``
            start_date: Lower bound on ``created_at``
        """
        stmt = (
            select(Transaction)
            .where(Transaction.created_at >= start_date)
            .where(self._migration_condition(field, timestamp))
            .order_by(Transaction.id)  # type: ignore[arg-type]
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete_migrated(self, field: str, timestamp: str, kinds: Sequence[str], start_date: datetime) -> int:
        """Hard-delete the rows created by a split migration.

        Returns:
            Number of deleted rows
        """
        stmt = (
            delete(Transaction)
            .where(self._migration_condition(field, timestamp))
            .where(Transaction.kind.in_(list(kinds)))  # type: ignore[union-attr]
            .where(Transaction.created_at >= start_date)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount or 0
