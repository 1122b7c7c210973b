"""create_buybox_and_repricing_tables

Revision ID: 5e1c0a7d2b94
Revises:
Create Date: 2026-10-18 09:12:44.108215

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5e1c0a7d2b94"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("sku", sa.String(length=128), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=128), nullable=True),
        sa.Column("base_price", sa.Float(), nullable=True),
        sa.Column("cost_price", sa.Float(), nullable=True),
        sa.Column("marketplaces", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_inventory_items_org_id", "inventory_items", ["org_id"])
    op.create_index("ix_inventory_items_user_id", "inventory_items", ["user_id"])
    op.create_index("ix_inventory_items_sku", "inventory_items", ["sku"])

    op.create_table(
        "buybox_histories",
        sa.Column("id", sa.String(length=160), primary_key=True),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("sku", sa.String(length=128), nullable=False),
        sa.Column("marketplace_id", sa.String(length=32), nullable=False),
        sa.Column("marketplace_product_id", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("is_monitoring", sa.Boolean(), nullable=False),
        sa.Column("monitoring_frequency", sa.Integer(), nullable=False),
        sa.Column("buybox_win_percentage", sa.Float(), nullable=False),
        sa.Column("average_price_difference", sa.Float(), nullable=True),
        sa.Column("lowest_price_to_win", sa.Float(), nullable=True),
        sa.Column("last_buybox_win", sa.JSON(), nullable=True),
        sa.Column("last_buybox_loss", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_buybox_histories_product_id", "buybox_histories", ["product_id"])
    op.create_index("ix_buybox_histories_sku", "buybox_histories", ["sku"])
    op.create_index("ix_buybox_histories_marketplace_id", "buybox_histories", ["marketplace_id"])
    op.create_index("ix_buybox_histories_org_id", "buybox_histories", ["org_id"])

    op.create_table(
        "buybox_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "history_id",
            sa.String(length=160),
            sa.ForeignKey("buybox_histories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("own_price", sa.Float(), nullable=False),
        sa.Column("buybox_price", sa.Float(), nullable=True),
        sa.Column("buybox_price_with_shipping", sa.Float(), nullable=True),
        sa.Column("price_difference_amount", sa.Float(), nullable=True),
        sa.Column("price_difference_percent", sa.Float(), nullable=True),
        sa.Column("competitor_count", sa.Integer(), nullable=False),
        sa.Column("competitors", sa.JSON(), nullable=False),
        sa.Column("has_pricing_opportunity", sa.Boolean(), nullable=False),
        sa.Column("suggested_price", sa.Float(), nullable=True),
        sa.Column("suggested_price_reason", sa.Text(), nullable=True),
    )
    op.create_index("ix_buybox_snapshots_history_id", "buybox_snapshots", ["history_id"])
    op.create_index("ix_buybox_snapshots_captured_at", "buybox_snapshots", ["captured_at"])

    op.create_table(
        "repricing_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("strategy", sa.String(length=32), nullable=False),
        sa.Column("parameters", sa.JSON(), nullable=False),
        sa.Column("product_filter", sa.JSON(), nullable=True),
        sa.Column("marketplaces", sa.JSON(), nullable=False),
        sa.Column("update_frequency", sa.Integer(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_repricing_rules_org_id", "repricing_rules", ["org_id"])
    op.create_index("ix_repricing_rules_next_run_at", "repricing_rules", ["next_run_at"])

    op.create_table(
        "repricing_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("rule_id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("sku", sa.String(length=128), nullable=False),
        sa.Column("marketplace_id", sa.String(length=32), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("previous_price", sa.Float(), nullable=False),
        sa.Column("new_price", sa.Float(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("buybox_status_before", sa.String(length=16), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_repricing_events_id", "repricing_events", ["id"])
    op.create_index("ix_repricing_events_rule_id", "repricing_events", ["rule_id"])
    op.create_index("ix_repricing_events_org_id", "repricing_events", ["org_id"])
    op.create_index("ix_repricing_events_product_id", "repricing_events", ["product_id"])
    op.create_index("ix_repricing_events_marketplace_id", "repricing_events", ["marketplace_id"])
    op.create_index("ix_repricing_events_timestamp", "repricing_events", ["timestamp"])

    op.create_table(
        "credit_accounts",
        sa.Column("org_id", sa.String(length=64), primary_key=True),
        sa.Column("balance", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("balance >= 0", name="ck_credit_accounts_balance_non_negative"),
    )

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "org_id",
            sa.String(length=64),
            sa.ForeignKey("credit_accounts.org_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("reference_id", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_credit_transactions_org_id", "credit_transactions", ["org_id"])


def downgrade() -> None:
    op.drop_table("credit_transactions")
    op.drop_table("credit_accounts")
    op.drop_table("repricing_events")
    op.drop_table("repricing_rules")
    op.drop_table("buybox_snapshots")
    op.drop_table("buybox_histories")
    op.drop_table("inventory_items")
