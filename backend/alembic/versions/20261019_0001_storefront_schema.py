"""Create users, products, sales history, goals and operational events"""

from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op

revision = "20261019_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

SOURCING_STATUSES = ("in progress", "negotiation", "complete", "MOQ required", "price", "failed")
GOAL_TYPES = ("revenue", "sales", "profit", "profit_margin")


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=254), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("user", "superuser", name="user_role_enum", native_enum=False),
            nullable=False,
            server_default="user",
        ),
        _created_at(),
    )

    op.create_table(
        "products",
        sa.Column("product_id", sa.String(length=36), primary_key=True),
        sa.Column(
            "owner_id",
            sa.String(length=36),
            sa.ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("variant", sa.String(length=120), nullable=True),
        sa.Column("supplier", sa.String(length=200), nullable=True),
        sa.Column(
            "sourcing_status",
            sa.Enum(*SOURCING_STATUSES, name="sourcing_status_enum", native_enum=False),
            nullable=False,
            server_default="in progress",
        ),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=False),
        sa.Column("base_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("fees", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("units_sold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_sales", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("profit_margin", sa.Numeric(12, 4), nullable=False, server_default="0"),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("unit_cost >= 0", name="ck_products_unit_cost_non_negative"),
        sa.CheckConstraint("base_price >= 0", name="ck_products_base_price_non_negative"),
        sa.CheckConstraint("fees >= 0", name="ck_products_fees_non_negative"),
    )
    op.create_index("products_owner_name_idx", "products", ["owner_id", "name"])

    op.create_table(
        "sale_records",
        sa.Column("sale_record_id", sa.String(length=36), primary_key=True),
        sa.Column(
            "product_id",
            sa.String(length=36),
            sa.ForeignKey("products.product_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("transaction_id", sa.String(length=64), nullable=False),
        sa.Column("sale_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("units_sold", sa.Integer(), nullable=False),
        sa.Column("revenue", sa.Numeric(12, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint("units_sold > 0", name="ck_sale_records_units_positive"),
        sa.CheckConstraint("revenue >= 0", name="ck_sale_records_revenue_non_negative"),
    )
    op.create_index("sale_records_product_idx", "sale_records", ["product_id"])
    op.create_index("sale_records_transaction_idx", "sale_records", ["transaction_id"])

    op.create_table(
        "goals",
        sa.Column("goal_id", sa.String(length=36), primary_key=True),
        sa.Column(
            "owner_id",
            sa.String(length=36),
            sa.ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            sa.String(length=36),
            sa.ForeignKey("products.product_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column(
            "goal_type",
            sa.Enum(*GOAL_TYPES, name="goal_type_enum", native_enum=False),
            nullable=False,
        ),
        sa.Column("target_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("current_amount", sa.Numeric(14, 4), nullable=False, server_default="0"),
        sa.Column("is_product_specific", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("target_amount > 0", name="ck_goals_target_positive"),
        sa.CheckConstraint("end_date >= start_date", name="ck_goals_dates_ordered"),
    )
    op.create_index("goals_owner_end_date_idx", "goals", ["owner_id", "end_date"])
    op.create_index("goals_product_idx", "goals", ["product_id"])

    op.create_table(
        "operational_metric_events",
        sa.Column("event_id", sa.String(length=36), primary_key=True),
        sa.Column("event_type", sa.String(length=120), nullable=False),
        sa.Column("outcome", sa.String(length=32), nullable=False),
        sa.Column("owner_id", sa.String(length=36), nullable=True),
        sa.Column("duration_ms", sa.Numeric(14, 3), nullable=True),
        sa.Column("labels", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("details", sa.JSON(), nullable=True),
        _created_at(),
    )
    for column in ("event_type", "outcome", "owner_id", "created_at"):
        op.create_index(
            f"ix_operational_metric_events_{column}",
            "operational_metric_events",
            [column],
        )


def downgrade() -> None:
    for column in ("created_at", "owner_id", "outcome", "event_type"):
        op.drop_index(
            f"ix_operational_metric_events_{column}",
            table_name="operational_metric_events",
        )
    op.drop_table("operational_metric_events")
    op.drop_index("goals_product_idx", table_name="goals")
    op.drop_index("goals_owner_end_date_idx", table_name="goals")
    op.drop_table("goals")
    op.drop_index("sale_records_transaction_idx", table_name="sale_records")
    op.drop_index("sale_records_product_idx", table_name="sale_records")
    op.drop_table("sale_records")
    op.drop_index("products_owner_name_idx", table_name="products")
    op.drop_table("products")
    op.drop_table("users")
