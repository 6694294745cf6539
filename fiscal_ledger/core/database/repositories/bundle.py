"""
Repository bundle for dependency injection.

The ledger services work on several tables inside one unit of work, so they
receive a bundle of repositories sharing a single session.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from .collectives import CollectiveRepository
from .expenses import ExpenseRepository
from .transaction_settlements import TransactionSettlementRepository
from .transactions import TransactionRepository


@dataclass(frozen=True)
class LedgerRepositories:
    """Convenience bundle of the ledger repositories bound to one session."""

    session: AsyncSession
    collectives: CollectiveRepository
    transactions: TransactionRepository
    settlements: TransactionSettlementRepository
    expenses: ExpenseRepository


def build_ledger_repos(session: AsyncSession) -> LedgerRepositories:
    """Build a LedgerRepositories bundle from an existing session.

    Args:
        session: Existing async session

    Returns:
        Bundle containing all repository instances
    """
    return LedgerRepositories(
        session=session,
        collectives=CollectiveRepository(session),
        transactions=TransactionRepository(session),
        settlements=TransactionSettlementRepository(session),
        expenses=ExpenseRepository(session),
    )
