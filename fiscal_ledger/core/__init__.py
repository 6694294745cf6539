"""
Core utilities and configuration for fiscal-ledger.

This package provides core functionality including logging configuration,
monitoring, database setup, and other shared utilities.
"""

from fiscal_ledger.core.logging_config import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
