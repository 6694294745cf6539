"""
Expense entity models.

Expenses are requests for payment from a collective's balance. The ledger
uses them for expense payouts and for the monthly platform settlement
invoices issued to hosts.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field

from ..base import Base, utc_now


class Expense(Base, table=True):
    """Entity for expenses and invoices.

    Table: expenses
    """

    __tablename__ = "expenses"

    id: Optional[int] = Field(default=None, primary_key=True)
    collective_id: int = Field(index=True, description="Account paying the expense")
    from_collective_id: int = Field(index=True, description="Payee")
    host_collective_id: Optional[int] = Field(default=None, index=True)

    description: str = Field()
    amount: int = Field()
    currency: str = Field(max_length=3)
    type: str = Field(default="INVOICE", max_length=32)
    status: str = Field(default="PENDING", max_length=32, index=True)
    fees_payer: str = Field(default="COLLECTIVE", max_length=16)
    data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False, default=dict))

    incurred_at: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now, index=True)
    deleted_at: Optional[datetime] = Field(default=None)

    def __repr__(self) -> str:
        return f"Expense(id={self.id}, collective_id={self.collective_id}, amount={self.amount}, status={self.status})"
