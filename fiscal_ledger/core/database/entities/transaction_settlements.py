"""
Transaction settlement entity models.

A settlement tracks the payment status of a debt pair (PLATFORM_TIP_DEBT,
HOST_FEE_SHARE_DEBT). It is keyed by the transaction group and the kind of the
debt, so each debt has exactly one settlement.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field

from ..base import Base, utc_now


class TransactionSettlement(Base, table=True):
    """Entity for debt settlements.

    Table: transaction_settlements
    """

    __tablename__ = "transaction_settlements"

    transaction_group: str = Field(primary_key=True, max_length=36)
    kind: str = Field(primary_key=True, max_length=64)
    status: str = Field(default="OWED", max_length=16, index=True)
    expense_id: Optional[int] = Field(default=None, index=True)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    deleted_at: Optional[datetime] = Field(default=None)

    def __repr__(self) -> str:
        return f"TransactionSettlement(group={self.transaction_group}, kind={self.kind}, status={self.status})"
