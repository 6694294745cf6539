"""Initial ledger schema for fiscal-ledger

Revision ID: 20260101_000000
Revises: None
Create Date: 2026-01-01 00:00:00.000000

This is the initial migration that creates the ledger tables:
- collectives (accounts, including hosts and the platform)
- transactions (double-entry ledger rows)
- transaction_settlements (status of the debts owed to the platform)
- expenses (including the invoices created by the host settlement)

Revision format: YYYYMMDD_HHMMSS_description

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20260101_000000"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all ledger tables."""

    # Create collectives table
    op.create_table(
        "collectives",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(32), nullable=False, server_default="COLLECTIVE"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", JSONB(), nullable=False, server_default="[]"),
        sa.Column("host_collective_id", sa.Integer(), nullable=True),
        sa.Column("parent_collective_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_host_account", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("host_fee_percent", sa.Float(), nullable=True),
        sa.Column("host_fee_share_percent", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_collectives_slug", "slug", unique=True),
        sa.Index("ix_collectives_type", "type"),
        sa.Index("ix_collectives_host_collective_id", "host_collective_id"),
        sa.Index("ix_collectives_parent_collective_id", "parent_collective_id"),
        sa.Index("ix_collectives_created_at", "created_at"),
    )

    # Create transactions table
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("uuid", sa.String(36), nullable=False),
        sa.Column("type", sa.String(8), nullable=False),
        sa.Column("kind", sa.String(64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("transaction_group", sa.String(36), nullable=False),
        sa.Column("collective_id", sa.Integer(), nullable=False),
        sa.Column("from_collective_id", sa.Integer(), nullable=True),
        sa.Column("host_collective_id", sa.Integer(), nullable=True),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("expense_id", sa.Integer(), nullable=True),
        sa.Column("payment_method_id", sa.Integer(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("amount_in_host_currency", sa.Integer(), nullable=True),
        sa.Column("host_currency", sa.String(3), nullable=True),
        sa.Column("host_currency_fx_rate", sa.Float(), nullable=False, server_default="1"),
        sa.Column("net_amount_in_collective_currency", sa.Integer(), nullable=True),
        sa.Column("platform_fee_in_host_currency", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("host_fee_in_host_currency", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payment_processor_fee_in_host_currency", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Integer(), nullable=True),
        sa.Column("is_refund", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_debt", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("refund_transaction_id", sa.Integer(), nullable=True),
        sa.Column("data", JSONB(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("cleared_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("uuid"),
        sa.Index("ix_transactions_type", "type"),
        sa.Index("ix_transactions_kind", "kind"),
        sa.Index("ix_transactions_transaction_group", "transaction_group"),
        sa.Index("ix_transactions_collective_id", "collective_id"),
        sa.Index("ix_transactions_from_collective_id", "from_collective_id"),
        sa.Index("ix_transactions_host_collective_id", "host_collective_id"),
        sa.Index("ix_transactions_order_id", "order_id"),
        sa.Index("ix_transactions_expense_id", "expense_id"),
        sa.Index("ix_transactions_created_at", "created_at"),
    )

    # Create transaction_settlements table
    op.create_table(
        "transaction_settlements",
        sa.Column("transaction_group", sa.String(36), nullable=False),
        sa.Column("kind", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="OWED"),
        sa.Column("expense_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("transaction_group", "kind"),
        sa.Index("ix_transaction_settlements_status", "status"),
        sa.Index("ix_transaction_settlements_expense_id", "expense_id"),
    )

    # Create expenses table
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("collective_id", sa.Integer(), nullable=False),
        sa.Column("from_collective_id", sa.Integer(), nullable=False),
        sa.Column("host_collective_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("type", sa.String(32), nullable=False, server_default="INVOICE"),
        sa.Column("status", sa.String(32), nullable=False, server_default="PENDING"),
        sa.Column("fees_payer", sa.String(16), nullable=False, server_default="COLLECTIVE"),
        sa.Column("data", JSONB(), nullable=False, server_default="{}"),
        sa.Column("incurred_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_expenses_collective_id", "collective_id"),
        sa.Index("ix_expenses_from_collective_id", "from_collective_id"),
        sa.Index("ix_expenses_host_collective_id", "host_collective_id"),
        sa.Index("ix_expenses_status", "status"),
        sa.Index("ix_expenses_created_at", "created_at"),
    )


def downgrade() -> None:
    """Drop all tables created in upgrade."""
    op.drop_table("expenses")
    op.drop_table("transaction_settlements")
    op.drop_table("transactions")
    op.drop_table("collectives")
