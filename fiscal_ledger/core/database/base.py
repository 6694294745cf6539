"""
Declarative root shared by the ledger tables.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import ConfigDict
from sqlmodel import SQLModel


class Base(SQLModel):
    """Every ledger table derives from this; its metadata drives ``create_all``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)


def utc_now() -> datetime:
    # Columns are stored as naive UTC timestamps.
    return datetime.now(timezone.utc).replace(tzinfo=None)
