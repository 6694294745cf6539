"""
Collective entity models.

A collective is any account holding a balance in the ledger: users,
organizations, collectives, events, projects, funds and vendors. Hosts are
collectives flagged with ``is_host_account`` that hold funds on behalf of the
collectives pointing to them through ``host_collective_id``.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field

from ..base import Base, utc_now


class Collective(Base, table=True):
    """Entity for ledger accounts.

    Table: collectives
    """

    __tablename__ = "collectives"

    id: Optional[int] = Field(default=None, primary_key=True)
    slug: str = Field(max_length=255, unique=True, index=True)
    name: str = Field(max_length=255)
    type: str = Field(default="COLLECTIVE", max_length=32, index=True)
    currency: str = Field(default="USD", max_length=3)
    description: Optional[str] = Field(default=None)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False, default=list))

    # Hosting
    host_collective_id: Optional[int] = Field(default=None, index=True)
    parent_collective_id: Optional[int] = Field(default=None, index=True)
    is_active: bool = Field(default=False)
    is_host_account: bool = Field(default=False)
    host_fee_percent: Optional[float] = Field(default=None)
    host_fee_share_percent: Optional[float] = Field(default=None)

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now, index=True)
    deleted_at: Optional[datetime] = Field(default=None)

    def __repr__(self) -> str:
        return f"Collective(id={self.id}, slug={self.slug}, type={self.type})"
