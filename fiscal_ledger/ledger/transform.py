"""
Export-only ledger transforms.

When a host's ledger is exported to an accounting tool, platform tips are
presented from the host's point of view rather than as stored. These
transforms work on detached copies of the rows and never write to the
database. They are independent and can be chained:

- ``reassign_platform_tip_credit_collectives``: tip credits appear under the
  collective that received the contribution instead of the platform.
- ``reassign_platform_tip_debt_collectives``: tip debts appear between the
  collective and the host instead of the platform and the host.
- ``recast_platform_tip_debits_as_application_fees``: tip debits become
  APPLICATION_FEE rows charged to the contributor.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

from fiscal_ledger.core.database.entities.transactions import Transaction
from fiscal_ledger.core.database.repositories.transactions import TransactionRepository

from .constants import TransactionKind, TransactionType

CREDIT = TransactionType.CREDIT.value
DEBIT = TransactionType.DEBIT.value


class RelatedContributionLoader:
    """Batch-load the CONTRIBUTION row of the same group and type as each given row."""

    def __init__(self, repository: TransactionRepository) -> None:
        self.repository = repository
        self._cache: Dict[Tuple[str, str], Optional[Transaction]] = {}

    async def load_many(self, transactions: Sequence[Transaction]) -> List[Optional[Transaction]]:
        missing = {t.transaction_group for t in transactions if (t.transaction_group, t.type) not in self._cache}
        if missing:
            contributions = await self.repository.find_contributions(missing)
            for group in missing:
                for type_ in (CREDIT, DEBIT):
                    self._cache.setdefault((group, type_), None)
            for contribution in contributions:
                key = (contribution.transaction_group, contribution.type)
                if self._cache.get(key) is None:
                    self._cache[key] = contribution
        return [self._cache.get((t.transaction_group, t.type)) for t in transactions]


def detach(transactions: Sequence[Transaction]) -> List[Transaction]:
    """Copy rows so that later changes are never flushed to the database."""
    return [Transaction(**t.model_dump()) for t in transactions]


async def reassign_platform_tip_credit_collectives(
    transactions: List[Transaction], loader: RelatedContributionLoader
) -> List[Transaction]:
    platform_tip_credits = [
        t for t in transactions if t.kind == TransactionKind.PLATFORM_TIP.value and t.type == CREDIT
    ]
    if not platform_tip_credits:
        return transactions

    related_contributions = await loader.load_many(platform_tip_credits)
    for transaction, contribution in zip(platform_tip_credits, related_contributions):
        if contribution is not None and contribution.collective_id:
            transaction.collective_id = contribution.collective_id
    return transactions


async def reassign_platform_tip_debt_collectives(
    transactions: List[Transaction], loader: RelatedContributionLoader
) -> List[Transaction]:
    """Replace the platform account with the contribution's accounts on tip debts.

    On the CREDIT side the host receives from the collective; on the DEBIT side
    the contributor is debited.
    """
    platform_tip_debts = [t for t in transactions if t.kind == TransactionKind.PLATFORM_TIP_DEBT.value]
    if not platform_tip_debts:
        return transactions

    related_contributions = await loader.load_many(platform_tip_debts)
    for transaction, contribution in zip(platform_tip_debts, related_contributions):
        if contribution is None:
            continue
        if transaction.type == CREDIT:
            transaction.from_collective_id = contribution.collective_id
        elif transaction.type == DEBIT:
            transaction.collective_id = contribution.from_collective_id
    return transactions


async def recast_platform_tip_debits_as_application_fees(
    transactions: List[Transaction], loader: RelatedContributionLoader
) -> List[Transaction]:
    platform_tip_debits = [
        t for t in transactions if t.kind == TransactionKind.PLATFORM_TIP.value and t.type == DEBIT
    ]
    if not platform_tip_debits:
        return transactions

    related_contributions = await loader.load_many(platform_tip_debits)
    for transaction, contribution in zip(platform_tip_debits, related_contributions):
        if contribution is None or not contribution.collective_id:
            continue
        transaction.kind = TransactionKind.APPLICATION_FEE.value
        transaction.collective_id = contribution.from_collective_id
    return transactions


EXPORT_TRANSFORMS = (
    reassign_platform_tip_credit_collectives,
    reassign_platform_tip_debt_collectives,
    recast_platform_tip_debits_as_application_fees,
)


async def transform_for_export(
    transactions: Sequence[Transaction], repository: TransactionRepository
) -> List[Transaction]:
    """Apply every export transform to detached copies of ``transactions``."""
    loader = RelatedContributionLoader(repository)
    rows = detach(transactions)
    for transform in EXPORT_TRANSFORMS:
        rows = await transform(rows, loader)
    return rows
