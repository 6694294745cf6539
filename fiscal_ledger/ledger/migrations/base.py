"""
Base of the ledger split migrations.

Legacy rows carry their fees and taxes as columns on the main pair. A split
migration moves one of these columns into its own pair in the same transaction
group, then fixes the main pair (and its refund pair, if any) so that balances
are unchanged.

Every row written or modified by a run is stamped with
``data[<migration_field>] = <timestamp>``. Modified rows also keep their
previous values in ``data.preMigrationData``, which is what ``rollback`` uses
to restore them after deleting the rows the run created.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from fiscal_ledger.core.database.entities.collectives import Collective
from fiscal_ledger.core.database.entities.transactions import Transaction
from fiscal_ledger.core.logging_config import get_logger
from fiscal_ledger.core.monitoring import HandlerType, report_error

from ..constants import TransactionType
from ..errors import LedgerError
from ..refunds import associate_transaction_refund_id, build_refund_for_transaction

if TYPE_CHECKING:
    from ..double_entry import LedgerService

logger = get_logger(__name__)

CREDIT = TransactionType.CREDIT.value
DEBIT = TransactionType.DEBIT.value

PROGRESS_EVERY = 100


class MigrationResult(BaseModel):
    """Summary of a migration run."""

    migration: str
    timestamp: Optional[str] = None
    pairs: int = 0
    migrated: int = 0
    skipped: int = 0
    dry_run: bool = False


class LedgerSplitMigration(ABC):
    """Split a legacy fee column into separate pairs.

    Subclasses define the column, the data field used to stamp rows, the
    columns backed up before the change and the kinds of the rows they create,
    and implement ``migrate_pair``.
    """

    name: str
    column: str
    migration_field: str
    backup_columns: Tuple[str, ...]
    created_kinds: Tuple[str, ...]
    default_start_date: datetime = datetime(2021, 6, 1)

    def __init__(self, ledger: "LedgerService", start_date: Optional[datetime] = None) -> None:
        self.ledger = ledger
        self.start_date = start_date or self.default_start_date
        self._hosts_cache: Dict[int, Optional[Collective]] = {}

    @property
    def transactions(self):
        return self.ledger.repos.transactions

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def check(self) -> int:
        """Get the number of transaction pairs still carrying the legacy column."""
        rows = await self.transactions.find_to_split(self.column, self.start_date)
        pairs = len(self.group_by_transaction_group(rows))
        if not pairs:
            logger.info(f"All good with {self.name}!")
        else:
            logger.info(f"{pairs} transaction pair(s) to migrate for {self.name}")
        return pairs

    async def migrate(self, dry_run: bool = False, timestamp: Optional[str] = None) -> MigrationResult:
        """Split every pair created since ``start_date``.

        Args:
            dry_run: Only count the pairs
            timestamp: Stamp of the run, milliseconds since epoch by default

        Returns:
            Counts of pairs found, migrated and skipped
        """
        rows = await self.transactions.find_to_split(self.column, self.start_date)
        groups = self.group_by_transaction_group(rows)
        timestamp = timestamp or str(int(time.time() * 1000))
        result = MigrationResult(migration=self.name, timestamp=timestamp, pairs=len(groups), dry_run=dry_run)

        logger.info(f"Migrating {len(groups)} transaction pairs...")
        if dry_run:
            logger.info("Dry run, aborting")
            return result

        transactions_data = {self.migration_field: timestamp}
        for count, transactions in enumerate(groups.values(), start=1):
            if count % PROGRESS_EVERY == 0:
                logger.info(f"Migrated {count}/{len(groups)} transaction pairs")

            credit = next((t for t in transactions if t.type == CREDIT), None)
            debit = next((t for t in transactions if t.type == DEBIT), None)
            if credit is None or debit is None:
                orphan = credit or debit
                logger.error(f"Transaction without matching CREDIT/DEBIT, skipping: {orphan.id if orphan else None}")
                result.skipped += 1
                continue

            transaction_group = credit.transaction_group
            try:
                # One savepoint per pair: a failure undoes that pair only.
                async with self.ledger.repos.session.begin_nested():
                    migrated = await self.migrate_pair(credit, debit, transactions_data)
            except LedgerError as e:
                report_error(e, handler=HandlerType.LEDGER_MIGRATION, extra={"transaction_group": transaction_group})
                migrated = False

            if migrated:
                result.migrated += 1
            else:
                result.skipped += 1

        logger.info(f"Migrated {result.migrated}/{len(groups)} transaction pairs ({result.skipped} skipped)")
        return result

    async def rollback(self, timestamp: str) -> int:
        """Undo a run, or every run with ``ALL``.

        Deletes the rows created by the run(s), then restores the backed up
        columns of the rows they modified.

        Returns:
            Number of restored rows

        Raises:
            ValueError: If no timestamp is given.
        """
        if not timestamp:
            raise ValueError(
                'A migration timestamp must be specified to trigger a rollback. Pass "ALL" to rollback everything'
            )

        logger.info("Deleting transactions...")
        deleted = await self.transactions.delete_migrated(
            self.migration_field, timestamp, self.created_kinds, self.start_date
        )
        logger.info(f"Deleted {deleted} transactions")

        logger.info("Fetching transactions to update...")
        rows = await self.transactions.find_migrated(self.migration_field, timestamp, self.start_date)
        for count, row in enumerate(rows, start=1):
            if count % PROGRESS_EVERY == 0:
                logger.info(f"Migrated {count}/{len(rows)} transactions")
            data = row.get_data()
            for column, value in (data.pop("preMigrationData", None) or {}).items():
                setattr(row, column, value)
            data.pop(self.migration_field, None)
            row.data = data
            await self.transactions.update(row)

        logger.info(f"Migrated {len(rows)}/{len(rows)} transactions")
        return len(rows)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def group_by_transaction_group(rows: List[Transaction]) -> "OrderedDict[str, List[Transaction]]":
        groups: "OrderedDict[str, List[Transaction]]" = OrderedDict()
        for row in rows:
            groups.setdefault(row.transaction_group, []).append(row)
        return groups

    def backup(self, row: Transaction) -> Dict[str, Any]:
        return {column: getattr(row, column) for column in self.backup_columns}

    def stamp(self, row: Transaction, transactions_data: Dict[str, Any], backup: Dict[str, Any]) -> None:
        row.data = {**row.get_data(), **transactions_data, "preMigrationData": backup}

    async def get_host(self, transaction: Transaction) -> Optional[Collective]:
        """Get the host of a row, cached per host id."""
        host_id = transaction.host_collective_id
        if host_id is None:
            return None
        if host_id not in self._hosts_cache:
            self._hosts_cache[host_id] = await self.ledger.repos.collectives.get_by_id(host_id)
        return self._hosts_cache[host_id]

    async def get_refund_pair(
        self, credit: Transaction, debit: Transaction
    ) -> Tuple[Optional[Transaction], Optional[Transaction]]:
        """Get ``(refund_credit, refund_debit)`` of a refunded pair."""
        refund_debit = await self.transactions.get_refund_transaction(credit)
        refund_credit = await self.transactions.get_refund_transaction(debit)
        return refund_credit, refund_debit

    async def refund_split_pair(
        self, split_transaction: Transaction, refund_credit: Transaction, transactions_data: Dict[str, Any]
    ) -> Transaction:
        """Refund a freshly split pair in the refund group of its main pair."""
        refund = {
            **build_refund_for_transaction(split_transaction, None, transactions_data),
            "transaction_group": refund_credit.transaction_group,
            "created_at": refund_credit.created_at,
        }
        refund_transaction = await self.ledger.create_double_entry(refund)
        await associate_transaction_refund_id(self.ledger, split_transaction, refund_transaction)
        return refund_transaction

    @abstractmethod
    async def migrate_pair(
        self, credit: Transaction, debit: Transaction, transactions_data: Dict[str, Any]
    ) -> bool:
        """Split one pair. Returns False when the pair is skipped."""
