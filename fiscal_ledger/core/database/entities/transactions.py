"""
Transaction entity models.

This module contains the database entity for the double-entry ledger. Every
economic event is stored as a CREDIT row on the receiving account and a DEBIT
row on the paying account, both sharing a ``transaction_group``. A single
group can hold several pairs of different kinds (contribution, host fee,
processor fee, tax, platform tip and the related debts).
"""

from __future__ import annotations

import uuid as uuid_lib
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field

from ..base import Base, utc_now


def _new_uuid() -> str:
    return str(uuid_lib.uuid4())


class Transaction(Base, table=True):
    """Entity for ledger rows.

    Amounts are integers in cents. ``amount`` is expressed in ``currency`` (the
    collective currency) and ``amount_in_host_currency`` in ``host_currency``;
    fees are expressed in host currency and stored as negative values.

    Table: transactions
    """

    __tablename__ = "transactions"

    # Primary identifiers
    id: Optional[int] = Field(default=None, primary_key=True)
    uuid: str = Field(default_factory=_new_uuid, max_length=36, unique=True)
    type: str = Field(max_length=8, index=True)
    kind: Optional[str] = Field(default=None, max_length=64, index=True)
    description: Optional[str] = Field(default=None)
    transaction_group: str = Field(max_length=36, index=True)

    # Accounts
    collective_id: int = Field(index=True)
    from_collective_id: Optional[int] = Field(default=None, index=True)
    host_collective_id: Optional[int] = Field(default=None, index=True)

    # Sources
    order_id: Optional[int] = Field(default=None, index=True)
    expense_id: Optional[int] = Field(default=None, index=True)
    payment_method_id: Optional[int] = Field(default=None)
    created_by_user_id: Optional[int] = Field(default=None)

    # Amounts
    amount: int = Field()
    currency: str = Field(max_length=3)
    amount_in_host_currency: Optional[int] = Field(default=None)
    host_currency: Optional[str] = Field(default=None, max_length=3)
    host_currency_fx_rate: float = Field(default=1.0)
    net_amount_in_collective_currency: Optional[int] = Field(default=None)

    # Fees and taxes (legacy columns, split into separate pairs over time)
    platform_fee_in_host_currency: int = Field(default=0)
    host_fee_in_host_currency: int = Field(default=0)
    payment_processor_fee_in_host_currency: int = Field(default=0)
    tax_amount: Optional[int] = Field(default=None)

    # Flags and links
    is_refund: bool = Field(default=False)
    is_debt: bool = Field(default=False)
    refund_transaction_id: Optional[int] = Field(default=None)
    data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False, default=dict))

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now, index=True)
    cleared_at: Optional[datetime] = Field(default=None)
    deleted_at: Optional[datetime] = Field(default=None)

    def get_data(self) -> Dict[str, Any]:
        """Get the JSON data column as a dictionary, never None."""
        return dict(self.data or {})

    def merge_data(self, **values: Any) -> None:
        """Merge values into the JSON data column.

        The column is reassigned rather than mutated so the ORM tracks the change.
        """
        self.data = {**self.get_data(), **values}

    @property
    def summary(self) -> Dict[str, Any]:
        """Short summary used in logs and reports."""
        return {
            "id": self.id,
            "type": self.type,
            "kind": self.kind,
            "transaction_group": self.transaction_group,
            "collective_id": self.collective_id,
            "from_collective_id": self.from_collective_id,
            "amount": self.amount,
            "currency": self.currency,
        }

    def __repr__(self) -> str:
        return (
            f"Transaction(id={self.id}, type={self.type}, kind={self.kind}, "
            f"group={self.transaction_group}, amount={self.amount})"
        )
