"""
API Schemas.

This module contains Pydantic models used for API request bodies and response validation.
These schemas define the interface contract between the client and the server.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fiscal_ledger.ledger.constants import TransactionSettlementStatus
from fiscal_ledger.ledger.settlements import HostSettlementReport


class TransactionResponse(BaseModel):
    """One ledger row, as stored (or as transformed for an export)."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    uuid: Optional[str] = None
    type: str
    kind: Optional[str] = None
    description: Optional[str] = None
    transaction_group: str
    collective_id: int
    from_collective_id: Optional[int] = None
    host_collective_id: Optional[int] = None
    order_id: Optional[int] = None
    expense_id: Optional[int] = None
    amount: int
    currency: str
    amount_in_host_currency: Optional[int] = None
    host_currency: Optional[str] = None
    host_currency_fx_rate: Optional[float] = None
    net_amount_in_collective_currency: Optional[int] = None
    platform_fee_in_host_currency: Optional[int] = None
    host_fee_in_host_currency: Optional[int] = None
    payment_processor_fee_in_host_currency: Optional[int] = None
    tax_amount: Optional[int] = None
    is_refund: Optional[bool] = None
    is_debt: Optional[bool] = None
    refund_transaction_id: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    cleared_at: Optional[datetime] = None


class RefundCreate(BaseModel):
    """
    Schema for refunding a transaction.

    The refund covers every pair of the original transaction group.
    """

    refunded_payment_processor_fee: int = Field(
        default=0,
        ge=0,
        description="Processor fee given back by the payment processor, in host currency cents.",
        examples=[0, 59],
    )
    user_id: Optional[int] = Field(default=None, description="User performing the refund.")
    data: Optional[Dict[str, Any]] = Field(
        default=None, description="Extra data merged into the refunded rows, e.g. provider refund ids."
    )


class SettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_group: str
    kind: str
    status: TransactionSettlementStatus
    expense_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SettlementUpdate(BaseModel):
    status: TransactionSettlementStatus = Field(..., description="New settlement status.")


class SettlementRunRequest(BaseModel):
    """
    Schema for running the monthly host settlement.

    Defaults to the month preceding today.
    """

    year: Optional[int] = Field(default=None, ge=2000, examples=[2026])
    month: Optional[int] = Field(default=None, ge=1, le=12, examples=[9])
    host_id: Optional[int] = Field(default=None, description="Only settle this host.")
    dry_run: bool = Field(default=False, description="Compute the invoices without writing them.")


class SettlementRunResponse(BaseModel):
    start: datetime
    end: datetime
    dry_run: bool
    reports: List[HostSettlementReport]


class SearchHit(BaseModel):
    id: Optional[Any] = None
    score: Optional[float] = None
    highlight: Dict[str, Any] = Field(default_factory=dict)


class SearchIndexResult(BaseModel):
    count: int = 0
    hits: List[SearchHit] = Field(default_factory=list)


class SearchResponse(BaseModel):
    query: str
    results: Dict[str, SearchIndexResult]


class ReIndexResponse(BaseModel):
    collective_id: int
    queued: bool
