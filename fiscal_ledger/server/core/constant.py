"""Server-wide constants."""

PROJECT_NAME = "fiscal-ledger"
API_V1_STR = "/api/v1"
API_VERSION = "0.1.0"
