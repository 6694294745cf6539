"""Domain enums for the ledger."""

from __future__ import annotations

from enum import Enum


class TransactionType(str, Enum):
    """Side of a ledger row. Every economic event has one of each, except self-transfers."""

    CREDIT = "CREDIT"
    DEBIT = "DEBIT"

    @property
    def opposite(self) -> "TransactionType":
        return TransactionType.DEBIT if self is TransactionType.CREDIT else TransactionType.CREDIT


class TransactionKind(str, Enum):
    """
    What a ledger pair represents.

    A contribution is split into several pairs sharing the same transaction group:
    the CONTRIBUTION itself, then HOST_FEE, PAYMENT_PROCESSOR_FEE, TAX and
    PLATFORM_TIP pairs, and the *_DEBT pairs recording what the host owes the platform.
    """

    ADDED_FUNDS = "ADDED_FUNDS"
    BALANCE_TRANSFER = "BALANCE_TRANSFER"
    CONTRIBUTION = "CONTRIBUTION"
    EXPENSE = "EXPENSE"
    HOST_FEE = "HOST_FEE"
    HOST_FEE_SHARE = "HOST_FEE_SHARE"
    HOST_FEE_SHARE_DEBT = "HOST_FEE_SHARE_DEBT"
    PAYMENT_PROCESSOR_COVER = "PAYMENT_PROCESSOR_COVER"
    PAYMENT_PROCESSOR_FEE = "PAYMENT_PROCESSOR_FEE"
    PAYMENT_PROCESSOR_DISPUTE_FEE = "PAYMENT_PROCESSOR_DISPUTE_FEE"
    PLATFORM_FEE = "PLATFORM_FEE"
    PLATFORM_TIP = "PLATFORM_TIP"
    PLATFORM_TIP_DEBT = "PLATFORM_TIP_DEBT"
    PREPAID_PAYMENT_METHOD = "PREPAID_PAYMENT_METHOD"
    TAX = "TAX"
    # Export-only, never stored
    APPLICATION_FEE = "APPLICATION_FEE"


# Kinds recording an amount owed by a host to the platform
DEBT_KINDS = (TransactionKind.PLATFORM_TIP_DEBT, TransactionKind.HOST_FEE_SHARE_DEBT)


class TransactionSettlementStatus(str, Enum):
    """Lifecycle of a debt: recorded, then invoiced to the host, then paid."""

    OWED = "OWED"
    INVOICED = "INVOICED"
    SETTLED = "SETTLED"


class ExpenseFeesPayer(str, Enum):
    """Who bears the payment processor fee of an expense."""

    COLLECTIVE = "COLLECTIVE"
    PAYEE = "PAYEE"


class ExpenseType(str, Enum):
    INVOICE = "INVOICE"
    RECEIPT = "RECEIPT"
    SETTLEMENT = "SETTLEMENT"
    GRANT = "GRANT"
    UNCLASSIFIED = "UNCLASSIFIED"


class ExpenseStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"
    ERROR = "ERROR"


class CollectiveType(str, Enum):
    USER = "USER"
    ORGANIZATION = "ORGANIZATION"
    COLLECTIVE = "COLLECTIVE"
    EVENT = "EVENT"
    PROJECT = "PROJECT"
    FUND = "FUND"
    VENDOR = "VENDOR"
