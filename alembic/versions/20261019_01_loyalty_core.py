"""Loyalty core tables.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


reward_type_enum = postgresql.ENUM(
    "cashback", "free_product", "progressive_discount", name="reward_type", create_type=False
)
staff_role_enum = postgresql.ENUM("owner", "manager", name="staff_role", create_type=False)
point_transaction_type_enum = postgresql.ENUM(
    "earn", "redeem", "adjustment", "expiry", name="point_transaction_type", create_type=False
)

_ENUMS = (reward_type_enum, staff_role_enum, point_transaction_type_enum)


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    bind = op.get_bind()
    for enum in _ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        "restaurants",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("slug", sa.String(80), nullable=False),
        sa.Column("program_name", sa.String(100), nullable=True),
        sa.Column("earn_rate", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("reward_type", reward_type_enum, nullable=False, server_default="cashback"),
        sa.Column("point_expiry_days", sa.Integer(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("earn_rate >= 1 AND earn_rate <= 100", name="ck_restaurants_earn_rate"),
    )
    op.create_index("ix_restaurants_slug", "restaurants", ["slug"], unique=True)

    op.create_table(
        "ranks",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "restaurant_id",
            _uuid(),
            sa.ForeignKey("restaurants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_visits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("multiplier", sa.Numeric(4, 2), nullable=False, server_default="1"),
        sa.Column("discount_pct", sa.Numeric(5, 2), nullable=False, server_default="0"),
        _timestamp("created_at"),
        sa.CheckConstraint("min_visits >= 0", name="ck_ranks_min_visits"),
        sa.CheckConstraint("multiplier >= 0.1 AND multiplier <= 10", name="ck_ranks_multiplier"),
        sa.CheckConstraint("discount_pct >= 0 AND discount_pct <= 100", name="ck_ranks_discount_pct"),
    )
    op.create_index("ix_ranks_restaurant_id", "ranks", ["restaurant_id"])

    op.create_table(
        "restaurant_staff",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "restaurant_id",
            _uuid(),
            sa.ForeignKey("restaurants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("role", staff_role_enum, nullable=False, server_default="manager"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("restaurant_id", "user_id", name="uq_restaurant_staff_user"),
    )
    op.create_index("ix_restaurant_staff_restaurant_id", "restaurant_staff", ["restaurant_id"])
    op.create_index("ix_restaurant_staff_user_id", "restaurant_staff", ["user_id"])

    op.create_table(
        "card_number_sequences",
        sa.Column(
            "restaurant_id",
            _uuid(),
            sa.ForeignKey("restaurants.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "customers",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "restaurant_id",
            _uuid(),
            sa.ForeignKey("restaurants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(11), nullable=False),
        sa.Column("card_number", sa.String(7), nullable=False),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("visit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_spend", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column(
            "current_rank_id",
            _uuid(),
            sa.ForeignKey("ranks.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("ledger_sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("restaurant_id", "card_number", name="uq_customers_restaurant_card_number"),
        sa.CheckConstraint("points_balance >= 0", name="ck_customers_points_balance"),
        sa.CheckConstraint("visit_count >= 0", name="ck_customers_visit_count"),
        sa.CheckConstraint("total_spend >= 0", name="ck_customers_total_spend"),
    )
    op.create_index("ix_customers_restaurant_id", "customers", ["restaurant_id"])
    op.create_index(
        "uq_customers_restaurant_phone_active",
        "customers",
        ["restaurant_id", "phone"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
        sqlite_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "sales",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "restaurant_id",
            _uuid(),
            sa.ForeignKey("restaurants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "customer_id",
            _uuid(),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("staff_id", _uuid(), sa.ForeignKey("restaurant_staff.id"), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("points_earned", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("created_at"),
        sa.CheckConstraint("amount_cents > 0", name="ck_sales_amount_cents"),
        sa.CheckConstraint("points_earned >= 0", name="ck_sales_points_earned"),
    )
    op.create_index("ix_sales_restaurant_id", "sales", ["restaurant_id"])
    op.create_index("ix_sales_customer_id", "sales", ["customer_id"])

    op.create_table(
        "point_transactions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "restaurant_id",
            _uuid(),
            sa.ForeignKey("restaurants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "customer_id",
            _uuid(),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("points_delta", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("transaction_type", point_transaction_type_enum, nullable=False),
        sa.Column("reference_id", _uuid(), nullable=True),
        sa.Column("note", sa.String(255), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("customer_id", "sequence", name="uq_point_transactions_customer_sequence"),
        sa.CheckConstraint("balance_after >= 0", name="ck_point_transactions_balance_after"),
    )
    op.create_index("ix_point_transactions_restaurant_id", "point_transactions", ["restaurant_id"])
    op.create_index("ix_point_transactions_customer_id", "point_transactions", ["customer_id"])

    op.create_table(
        "reward_configs",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "restaurant_id",
            _uuid(),
            sa.ForeignKey("restaurants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("points_required", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("points_required > 0", name="ck_reward_configs_points_required"),
    )
    op.create_index("ix_reward_configs_restaurant_id", "reward_configs", ["restaurant_id"])

    op.create_table(
        "reward_redemptions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "restaurant_id",
            _uuid(),
            sa.ForeignKey("restaurants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "customer_id",
            _uuid(),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("reward_type", reward_type_enum, nullable=False),
        sa.Column("reward_config_id", _uuid(), sa.ForeignKey("reward_configs.id"), nullable=True),
        sa.Column("rank_id", _uuid(), sa.ForeignKey("ranks.id", ondelete="SET NULL"), nullable=True),
        sa.Column("points_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("credit_amount", sa.Integer(), nullable=True),
        sa.Column("staff_id", _uuid(), sa.ForeignKey("restaurant_staff.id"), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint("points_spent >= 0", name="ck_reward_redemptions_points_spent"),
    )
    op.create_index("ix_reward_redemptions_restaurant_id", "reward_redemptions", ["restaurant_id"])
    op.create_index("ix_reward_redemptions_customer_id", "reward_redemptions", ["customer_id"])


def downgrade() -> None:
    op.drop_table("reward_redemptions")
    op.drop_table("reward_configs")
    op.drop_table("point_transactions")
    op.drop_table("sales")
    op.drop_index("uq_customers_restaurant_phone_active", table_name="customers")
    op.drop_table("customers")
    op.drop_table("card_number_sequences")
    op.drop_table("restaurant_staff")
    op.drop_table("ranks")
    op.drop_table("restaurants")

    bind = op.get_bind()
    for enum in reversed(_ENUMS):
        enum.drop(bind, checkfirst=True)
