"""
Settlement of the debts hosts owe to the platform.

Platform tips and host fee shares collected by a host are recorded as debt
pairs (``PLATFORM_TIP_DEBT``, ``HOST_FEE_SHARE_DEBT``). Each debt has a
settlement keyed by its transaction group and kind, going through
``OWED -> INVOICED -> SETTLED``. Once a month every host with activity gets an
invoice (a PENDING expense payable to the platform) for what is still owed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from fiscal_ledger.core.database.base import utc_now
from fiscal_ledger.core.database.entities.expenses import Expense
from fiscal_ledger.core.database.entities.transaction_settlements import TransactionSettlement
from fiscal_ledger.core.database.entities.transactions import Transaction
from fiscal_ledger.core.database.repositories.bundle import LedgerRepositories
from fiscal_ledger.core.logging_config import get_logger
from fiscal_ledger.core.monitoring import HandlerType, report_error
from fiscal_ledger.server.core.config import PlatformConfig

from .constants import (
    ExpenseStatus,
    ExpenseType,
    TransactionKind,
    TransactionSettlementStatus,
)
from .errors import InvalidTransactionError

logger = get_logger(__name__)


async def create_for_transaction(
    repos: LedgerRepositories,
    transaction: Transaction,
    status: TransactionSettlementStatus = TransactionSettlementStatus.OWED,
) -> TransactionSettlement:
    """Insert the settlement of a debt row.

    Raises:
        InvalidTransactionError: If the row is not a debt.
    """
    if not transaction.is_debt or not transaction.kind:
        raise InvalidTransactionError(f"Transaction #{transaction.id} is not a debt")
    settlement = TransactionSettlement(
        transaction_group=transaction.transaction_group,
        kind=transaction.kind,
        status=TransactionSettlementStatus(status).value,
    )
    return await repos.settlements.create(settlement)


async def update_status(
    repos: LedgerRepositories,
    transaction_group: str,
    kind: str,
    status: TransactionSettlementStatus,
) -> Optional[TransactionSettlement]:
    """Change the status of a settlement. Returns None when it does not exist."""
    settlement = await repos.settlements.get(transaction_group, kind)
    if settlement is None:
        return None
    settlement.status = TransactionSettlementStatus(status).value
    settlement.updated_at = utc_now()
    return await repos.settlements.update(settlement)


async def mark_as_invoiced(
    repos: LedgerRepositories, transactions: Iterable[Transaction], expense_id: int
) -> int:
    return await repos.settlements.mark_as_invoiced(transactions, expense_id)


def settlement_period(base_date: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Get the ``[start, end)`` window of the month preceding ``base_date``."""
    base_date = base_date or utc_now()
    end = datetime(base_date.year, base_date.month, 1)
    if end.month == 1:
        start = datetime(end.year - 1, 12, 1)
    else:
        start = datetime(end.year, end.month - 1, 1)
    return start, end


class SettlementItem(BaseModel):
    description: str
    amount: int


class HostSettlementReport(BaseModel):
    """Outcome of the settlement of one host."""

    host_id: int
    host_name: str
    currency: str
    total_amount: int
    items: List[SettlementItem] = Field(default_factory=list)
    transaction_ids: List[int] = Field(default_factory=list)
    expense_id: Optional[int] = None
    skipped: bool = False
    reason: Optional[str] = None


class HostSettlementService:
    """Invoice hosts for the platform tips and host fee shares they owe.

    Args:
        repos: Repositories bound to the session of the run
        platform: Platform account configuration
    """

    def __init__(self, repos: LedgerRepositories, platform: Optional[PlatformConfig] = None) -> None:
        self.repos = repos
        self.platform = platform or PlatformConfig()

    async def run(
        self,
        start: datetime,
        end: datetime,
        host_id: Optional[int] = None,
        dry_run: bool = False,
    ) -> List[HostSettlementReport]:
        """Invoice every host with ledger activity in ``[start, end)``.

        The platform itself is never invoiced. A failure on one host is reported
        and the run continues with the next host.

        Returns:
            One report per host considered
        """
        logger.info(
            f"Invoicing hosts pending fees and tips for {start:%B %Y}" + (" (dry run)" if dry_run else "")
        )
        hosts = await self.repos.collectives.find_hosts_with_activity(
            start, end, exclude_ids=[self.platform.collective_id], host_id=host_id
        )

        reports: List[HostSettlementReport] = []
        for host in hosts:
            host_id = host.id
            try:
                async with self.repos.session.begin_nested():
                    reports.append(await self._settle_host(host, start, end, dry_run))
            except Exception as e:
                report_error(e, handler=HandlerType.HOST_SETTLEMENT, extra={"host_id": host_id})
        return reports

    async def _settle_host(self, host, start: datetime, end: datetime, dry_run: bool) -> HostSettlementReport:
        debts = await self.repos.settlements.find_pending_debts(host.id, start, end)
        # Host-side debt rows are positive; the refund of an invoiced debt is negative and is deduced.
        pending_tips = sum(
            t.amount_in_host_currency or 0 for t in debts if t.kind == TransactionKind.PLATFORM_TIP_DEBT.value
        )
        pending_fee_share = sum(
            t.amount_in_host_currency or 0 for t in debts if t.kind == TransactionKind.HOST_FEE_SHARE_DEBT.value
        )
        items = [
            SettlementItem(description="Platform Tips", amount=pending_tips),
            SettlementItem(description="Shared Revenue", amount=pending_fee_share),
        ]
        total = pending_tips + pending_fee_share
        report = HostSettlementReport(
            host_id=host.id,
            host_name=host.name,
            currency=host.currency,
            total_amount=total,
            items=items,
            transaction_ids=[t.id for t in debts],
        )

        if total <= 0 or total < self.platform.settlement_min_amount:
            logger.warning(
                f"{host.name} (#{host.id}) skipped, total amount pending {total / 100:.2f} "
                f"< {self.platform.settlement_min_amount / 100:.2f} {host.currency}"
            )
            report.skipped = True
            report.reason = "below minimum amount"
            return report

        logger.info(
            f"{host.name} (#{host.id}) has {len(debts)} pending transactions and owes {total / 100:.2f} ({host.currency})"
        )
        if dry_run:
            return report

        expense = await self.repos.expenses.create(
            Expense(
                collective_id=host.id,
                from_collective_id=self.platform.collective_id,
                host_collective_id=host.host_collective_id or host.id,
                description=f"Platform settlement for {start:%B}",
                amount=total,
                currency=host.currency,
                type=ExpenseType.INVOICE.value,
                status=ExpenseStatus.PENDING.value,
                data={
                    "isPlatformTipSettlement": True,
                    "transactionIds": report.transaction_ids,
                    "items": [item.model_dump() for item in items],
                },
            )
        )
        await mark_as_invoiced(self.repos, debts, expense.id)
        report.expense_id = expense.id
        return report
