"""Exceptions raised by the ledger services."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger errors surfaced to API clients and CLI users."""

    status_code = 400


class InvalidTransactionError(LedgerError):
    """The transaction payload or the stored ledger state does not allow the operation."""


class TransactionNotFoundError(LedgerError):
    status_code = 404


class AlreadyRefundedError(LedgerError):
    status_code = 409

    def __init__(self, message: str = "This transaction has already been refunded") -> None:
        super().__init__(message)


class UnsupportedFeesPayerError(LedgerError):
    def __init__(self, fees_payer: str) -> None:
        self.fees_payer = fees_payer
        super().__init__(f"Refund not supported for feesPayer = '{fees_payer}'")


class FxRateUnavailableError(LedgerError):
    status_code = 503

    def __init__(self, from_currency: str, to_currency: str, reason: str | None = None) -> None:
        self.from_currency = from_currency
        self.to_currency = to_currency
        message = f"No FX rate available for {from_currency} -> {to_currency}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
