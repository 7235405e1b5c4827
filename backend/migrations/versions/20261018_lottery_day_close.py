"""Lottery day close: stores, shifts, day summaries, lottery packs and business days

Revision ID: 20261018_lottery_close
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_lottery_close"
down_revision = None
branch_labels = None
depends_on = None


def _uuid(name, **kwargs):
    return sa.Column(name, sa.String(length=36), **kwargs)


def _timestamp(name, nullable=False):
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade():
    op.create_table(
        "stores",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="UTC"),
        _timestamp("created_at"),
        sa.UniqueConstraint("code", name="uq_stores_code"),
    )
    op.create_index("ix_stores_code", "stores", ["code"], unique=False)

    op.create_table(
        "shifts",
        _uuid("id", primary_key=True),
        _uuid("store_id", sa.ForeignKey("stores.id"), nullable=False),
        _uuid("cashier_id", nullable=False),
        sa.Column("terminal_name", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="OPEN"),
        _timestamp("opened_at"),
        _timestamp("closed_at", nullable=True),
    )
    op.create_index("ix_shifts_store_id", "shifts", ["store_id"], unique=False)
    op.create_index("ix_shifts_cashier_id", "shifts", ["cashier_id"], unique=False)
    op.create_index("ix_shifts_opened_at", "shifts", ["opened_at"], unique=False)
    op.create_index("ix_shifts_store_status", "shifts", ["store_id", "status"], unique=False)

    op.create_table(
        "day_summaries",
        _uuid("id", primary_key=True),
        _uuid("store_id", sa.ForeignKey("stores.id"), nullable=False),
        sa.Column("business_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="OPEN"),
        sa.Column("lottery_sales_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lottery_tickets_sold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lottery_packs_depleted", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("closed_at", nullable=True),
        _uuid("closed_by", nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("store_id", "business_date", name="uq_day_summaries_store_date"),
    )
    op.create_index("ix_day_summaries_store_id", "day_summaries", ["store_id"], unique=False)
    op.create_index("ix_day_summaries_business_date", "day_summaries", ["business_date"], unique=False)

    op.create_table(
        "lottery_games",
        _uuid("id", primary_key=True),
        sa.Column("game_code", sa.String(length=16), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("tickets_per_pack", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("game_code", name="uq_lottery_games_code"),
    )

    op.create_table(
        "lottery_bins",
        _uuid("id", primary_key=True),
        _uuid("store_id", sa.ForeignKey("stores.id"), nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("store_id", "display_order", name="uq_lottery_bins_store_order"),
    )
    op.create_index("ix_lottery_bins_store_id", "lottery_bins", ["store_id"], unique=False)

    op.create_table(
        "lottery_business_days",
        _uuid("id", primary_key=True),
        _uuid("store_id", sa.ForeignKey("stores.id"), nullable=False),
        sa.Column("business_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="OPEN"),
        _uuid("opened_by", nullable=True),
        _timestamp("opened_at"),
        _uuid("closed_by", nullable=True),
        _timestamp("closed_at", nullable=True),
        sa.Column("pending_close_data", sa.JSON(none_as_null=True), nullable=True),
        _uuid("pending_close_by", nullable=True),
        _timestamp("pending_close_at", nullable=True),
        _timestamp("pending_close_expires_at", nullable=True),
        sa.Column("total_sales_cents", sa.Integer(), nullable=True),
        sa.Column("total_tickets_sold", sa.Integer(), nullable=True),
        _uuid("day_summary_id", sa.ForeignKey("day_summaries.id"), nullable=True),
    )
    op.create_index("ix_lottery_business_days_store_id", "lottery_business_days", ["store_id"], unique=False)
    op.create_index("ix_lottery_business_days_closed_at", "lottery_business_days", ["closed_at"], unique=False)
    op.create_index(
        "ix_lottery_business_days_pending_close_expires_at",
        "lottery_business_days",
        ["pending_close_expires_at"],
        unique=False,
    )
    op.create_index("ix_lottery_business_days_day_summary_id", "lottery_business_days", ["day_summary_id"], unique=False)
    op.create_index("ix_lottery_days_store_status", "lottery_business_days", ["store_id", "status"], unique=False)
    op.create_index("ix_lottery_days_store_date", "lottery_business_days", ["store_id", "business_date"], unique=False)
    op.create_index(
        "uq_lottery_days_store_current",
        "lottery_business_days",
        ["store_id"],
        unique=True,
        sqlite_where=sa.text("status IN ('OPEN', 'PENDING_CLOSE')"),
        postgresql_where=sa.text("status IN ('OPEN', 'PENDING_CLOSE')"),
    )

    op.create_table(
        "lottery_packs",
        _uuid("id", primary_key=True),
        _uuid("store_id", sa.ForeignKey("stores.id"), nullable=False),
        _uuid("game_id", sa.ForeignKey("lottery_games.id"), nullable=False),
        _uuid("bin_id", sa.ForeignKey("lottery_bins.id"), nullable=True),
        sa.Column("pack_number", sa.String(length=32), nullable=False),
        sa.Column("serial_start", sa.String(length=3), nullable=False),
        sa.Column("serial_end", sa.String(length=3), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="RECEIVED"),
        _timestamp("activated_at", nullable=True),
        _timestamp("depleted_at", nullable=True),
        _uuid("depleted_by", nullable=True),
        sa.Column("depletion_reason", sa.String(length=32), nullable=True),
        _uuid("depleted_day_id", sa.ForeignKey("lottery_business_days.id"), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("game_id", "pack_number", name="uq_lottery_packs_game_number"),
    )
    op.create_index("ix_lottery_packs_store_id", "lottery_packs", ["store_id"], unique=False)
    op.create_index("ix_lottery_packs_game_id", "lottery_packs", ["game_id"], unique=False)
    op.create_index("ix_lottery_packs_bin_id", "lottery_packs", ["bin_id"], unique=False)
    op.create_index("ix_lottery_packs_store_status", "lottery_packs", ["store_id", "status"], unique=False)

    op.create_table(
        "lottery_day_packs",
        _uuid("id", primary_key=True),
        _uuid("day_id", sa.ForeignKey("lottery_business_days.id"), nullable=False),
        _uuid("pack_id", sa.ForeignKey("lottery_packs.id"), nullable=False),
        _uuid("bin_id", sa.ForeignKey("lottery_bins.id"), nullable=True),
        sa.Column("starting_serial", sa.String(length=3), nullable=False),
        sa.Column("ending_serial", sa.String(length=3), nullable=True),
        sa.Column("tickets_sold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sales_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("entry_method", sa.String(length=16), nullable=True),
        sa.Column("is_sold_out", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("day_id", "pack_id", name="uq_lottery_day_packs_day_pack"),
    )
    op.create_index("ix_lottery_day_packs_day_id", "lottery_day_packs", ["day_id"], unique=False)
    op.create_index("ix_lottery_day_packs_pack_id", "lottery_day_packs", ["pack_id"], unique=False)


def downgrade():
    op.drop_table("lottery_day_packs")
    op.drop_table("lottery_packs")
    op.drop_table("lottery_business_days")
    op.drop_table("lottery_bins")
    op.drop_table("lottery_games")
    op.drop_table("day_summaries")
    op.drop_table("shifts")
    op.drop_table("stores")
