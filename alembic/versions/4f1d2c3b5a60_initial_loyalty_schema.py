"""initial loyalty schema

Revision ID: 4f1d2c3b5a60
Revises: 
Create Date: 2026-10-18 09:12:40.118203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4f1d2c3b5a60'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid():
    return postgresql.UUID(as_uuid=True)


def _timestamps():
    return [
        sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("merchants"):
        op.create_table(
            "merchants",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("merchant_id", sa.String(length=100), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("username", sa.String(length=100), nullable=True),
            sa.Column("domain", sa.String(length=255), nullable=True),
            sa.Column("installer_email", sa.String(length=255), nullable=True),
            sa.Column("access_token", sa.String(length=2000), nullable=True),
            sa.Column("loyalty_settings", sa.JSON(), nullable=False),
            sa.Column("notification_settings", sa.JSON(), nullable=False),
            sa.Column("customers_points", sa.Integer(), server_default="0", nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("merchant_id", name="uq_merchants_merchant_id"),
        )

    if not inspector.has_table("customers"):
        op.create_table(
            "customers",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("merchant_id", _uuid(), sa.ForeignKey("merchants.id"), nullable=False),
            sa.Column("customer_id", sa.String(length=100), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("phone", sa.String(length=50), nullable=True),
            sa.Column("date_of_birth", sa.Date(), nullable=True),
            sa.Column("order_count", sa.Integer(), server_default="0", nullable=False),
            sa.Column("total_spent", sa.Numeric(12, 2), server_default="0", nullable=False),
            sa.Column("points", sa.Integer(), server_default="0", nullable=False),
            sa.Column("tier", sa.String(length=20), server_default="bronze", nullable=False),
            sa.Column("share_count", sa.Integer(), server_default="0", nullable=False),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("is_deleted", sa.Boolean(), server_default=sa.false(), nullable=False),
            *_timestamps(),
            sa.UniqueConstraint("merchant_id", "customer_id", name="uq_customers_merchant_customer_id"),
            sa.CheckConstraint("points >= 0", name="ck_customers_points_non_negative"),
        )

    if not inspector.has_table("rewards"):
        op.create_table(
            "rewards",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("merchant_id", _uuid(), sa.ForeignKey("merchants.id"), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("name_en", sa.String(length=200), nullable=True),
            sa.Column("description", sa.String(length=1000), nullable=False),
            sa.Column("description_en", sa.String(length=1000), nullable=True),
            sa.Column("points_required", sa.Integer(), server_default="100", nullable=False),
            sa.Column("reward_type", sa.String(length=50), server_default="percentage", nullable=False),
            sa.Column("reward_value", sa.Numeric(12, 2), server_default="10", nullable=False),
            sa.Column("min_order_value", sa.Numeric(12, 2), server_default="0", nullable=False),
            sa.Column("max_usage_per_customer", sa.Integer(), server_default="1", nullable=False),
            sa.Column("max_total_usage", sa.Integer(), server_default="1000", nullable=False),
            sa.Column("current_usage", sa.Integer(), server_default="0", nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("enabled", sa.Boolean(), nullable=True),
            sa.Column("valid_from", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("valid_until", sa.TIMESTAMP(), nullable=True),
            sa.Column("category", sa.String(length=50), nullable=True),
            sa.Column("terms", sa.JSON(), nullable=True),
            sa.Column("terms_en", sa.JSON(), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_rewards_merchant_active", "rewards", ["merchant_id", "is_active"])

    if not inspector.has_table("coupons"):
        op.create_table(
            "coupons",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("reward_id", _uuid(), sa.ForeignKey("rewards.id"), nullable=False),
            sa.Column("customer_id", _uuid(), sa.ForeignKey("customers.id"), nullable=False),
            sa.Column("merchant_id", _uuid(), sa.ForeignKey("merchants.id"), nullable=False),
            sa.Column("expires_at", sa.TIMESTAMP(), nullable=False),
            sa.Column("used", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("used_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("used_on_order_id", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.UniqueConstraint("code", name="uq_coupons_code"),
        )
        op.create_index("ix_coupons_customer_id", "coupons", ["customer_id"])

    if not inspector.has_table("customer_loyalty_activities"):
        op.create_table(
            "customer_loyalty_activities",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("customer_id", _uuid(), sa.ForeignKey("customers.id"), nullable=False),
            sa.Column("merchant_id", _uuid(), sa.ForeignKey("merchants.id"), nullable=False),
            sa.Column("event", sa.String(length=50), nullable=False),
            sa.Column("points", sa.Integer(), nullable=False),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )
        op.create_index(
            "ix_customer_loyalty_activities_customer_created",
            "customer_loyalty_activities",
            ["customer_id", "created_at"],
        )

    if not inspector.has_table("customer_applied_rewards"):
        op.create_table(
            "customer_applied_rewards",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("customer_id", _uuid(), sa.ForeignKey("customers.id"), nullable=False),
            sa.Column("reward_id", _uuid(), sa.ForeignKey("rewards.id"), nullable=False),
            sa.Column("coupon_id", _uuid(), sa.ForeignKey("coupons.id"), nullable=True),
            sa.Column("applied_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )

    if not inspector.has_table("notification_outbox"):
        op.create_table(
            "notification_outbox",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("merchant_id", _uuid(), sa.ForeignKey("merchants.id"), nullable=True),
            sa.Column("customer_id", _uuid(), sa.ForeignKey("customers.id"), nullable=True),
            sa.Column("event", sa.String(length=50), nullable=False),
            sa.Column("audience", sa.String(length=20), server_default="CUSTOMER", nullable=False),
            sa.Column("recipient", sa.String(length=255), nullable=False),
            sa.Column("subject", sa.String(length=255), nullable=False),
            sa.Column("html_body", sa.Text(), nullable=False),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), server_default="PENDING", nullable=False),
            sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
            sa.Column("last_error", sa.String(length=2000), nullable=True),
            sa.Column("locked_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("locked_by", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("sent_at", sa.TIMESTAMP(), nullable=True),
        )
        op.create_index("ix_notification_outbox_status_created", "notification_outbox", ["status", "created_at"])

    if not inspector.has_table("processed_events"):
        op.create_table(
            "processed_events",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("merchant_id", _uuid(), sa.ForeignKey("merchants.id"), nullable=False),
            sa.Column("customer_id", _uuid(), sa.ForeignKey("customers.id"), nullable=False),
            sa.Column("event", sa.String(length=50), nullable=False),
            sa.Column("order_id", sa.String(length=100), nullable=False),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.UniqueConstraint(
                "merchant_id", "event", "order_id", name="uq_processed_events_merchant_event_order"
            ),
        )


def downgrade() -> None:
    """Downgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table in (
        "processed_events",
        "notification_outbox",
        "customer_applied_rewards",
        "customer_loyalty_activities",
        "coupons",
        "rewards",
        "customers",
        "merchants",
    ):
        if inspector.has_table(table):
            op.drop_table(table)
