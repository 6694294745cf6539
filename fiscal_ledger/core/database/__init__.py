"""
Centralized database layer for the fiscal ledger.

Structure:
- entities/: Database entity models organized by table
- repositories/: Data access layer organized by table
- session.py: Global engine and session factory management
- utils.py: Database utility functions (engine, session factory, create_all)

The global engine lives in ``session`` and is imported lazily by its users so
that importing the entities never opens a connection pool.
"""

from .base import Base, utc_now
from .utils import (
    create_all,
    create_engine,
    create_sessionmaker,
    normalize_database_url,
)

__all__ = [
    "Base",
    "create_all",
    "create_engine",
    "create_sessionmaker",
    "normalize_database_url",
    "utc_now",
]
