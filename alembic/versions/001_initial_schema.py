"""Initial schema — synced_transactions, sync_state

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- synced_transactions (one row per marketplace sale) ---
    op.create_table(
        "synced_transactions",
        sa.Column("id", sa.String(32), nullable=False, comment="Internal id (uuid4 hex)"),
        sa.Column("external_transaction_id", sa.String(), nullable=False, comment="eBay TransactionID (dedup key)"),
        sa.Column("external_item_id", sa.String(), nullable=False, server_default=""),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("sold_price", sa.DECIMAL(12, 2), nullable=False),
        sa.Column("sold_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("listed_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("item_cost", sa.DECIMAL(12, 2), nullable=True, comment="User-entered cost of goods"),
        sa.Column("shipping_cost", sa.DECIMAL(12, 2), nullable=False),
        sa.Column("shipping_service", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("condition", sa.String(), nullable=False),
        sa.Column("final_value_fee", sa.DECIMAL(12, 2), nullable=False),
        sa.Column("payment_processing_fee", sa.DECIMAL(12, 2), nullable=False),
        sa.Column("insertion_fee", sa.DECIMAL(12, 2), nullable=True),
        sa.Column("total_fees", sa.DECIMAL(12, 2), nullable=False),
        sa.Column("net_profit", sa.DECIMAL(12, 2), nullable=False),
        sa.Column("profit_margin", sa.DECIMAL(10, 2), nullable=False, comment="Percent of sold price"),
        sa.Column("days_listed", sa.INTEGER(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("synced_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("sync_status", sa.String(), nullable=False, server_default="synced"),
        sa.Column("sync_error", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("external_transaction_id", name="uq_synced_transactions_external_id"),
    )
    op.create_index("ix_synced_transactions_sold_date", "synced_transactions", ["sold_date"])

    # --- sync_state (singleton row id = 1) ---
    op.create_table(
        "sync_state",
        sa.Column("id", sa.INTEGER(), nullable=False),
        sa.Column("last_sync_time", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("token_expires_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("token_type", sa.String(), nullable=True),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("id = 1", name="ck_sync_state_singleton"),
    )


def downgrade() -> None:
    op.drop_table("sync_state")
    op.drop_index("ix_synced_transactions_sold_date", table_name="synced_transactions")
    op.drop_table("synced_transactions")
