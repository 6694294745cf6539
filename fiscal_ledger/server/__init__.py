"""FastAPI server of fiscal-ledger."""
