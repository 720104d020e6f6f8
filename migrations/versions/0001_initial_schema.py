"""initial schema: accounts, campaigns, ads, analytics, billing, profiles, notifications

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create every table. Idempotent: tables that already exist are skipped."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    # ---------- Accounts / RBAC / audit ----------
    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "roles" not in existing_tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("key", sa.String(64), nullable=False, unique=True),
            sa.Column("name", sa.String(128), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "permissions" not in existing_tables:
        op.create_table(
            "permissions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("key", sa.String(128), nullable=False, unique=True),
            sa.Column("name", sa.String(128), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "user_roles" not in existing_tables:
        op.create_table(
            "user_roles",
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        )

    if "role_permissions" not in existing_tables:
        op.create_table(
            "role_permissions",
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
            sa.Column(
                "permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True
            ),
        )

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
        )

    # ---------- Campaigns / ads / analytics ----------
    if "campaigns" not in existing_tables:
        op.create_table(
            "campaigns",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
            sa.Column("budget_cents", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("impressions", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("clicks", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("conversions", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("target_audience", sa.String(255), nullable=True),
            sa.Column("objectives", sa.JSON(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_campaigns_user", "campaigns", ["user_id"])
        op.create_index("idx_campaigns_user_status", "campaigns", ["user_id", "status"])

    if "ads" not in existing_tables:
        op.create_table(
            "ads",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("campaign_id", sa.Integer(), sa.ForeignKey("campaigns.id"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("ad_type", sa.String(16), nullable=False, server_default="image"),
            sa.Column("headline", sa.String(255), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("link_url", sa.String(1024), nullable=True),
            sa.Column("image_url", sa.String(1024), nullable=True),
            sa.Column("video_url", sa.String(1024), nullable=True),
            sa.Column("budget_cents", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
            sa.Column("performance_data", sa.JSON(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_ads_campaign", "ads", ["campaign_id"])
        op.create_index("idx_ads_user", "ads", ["user_id"])

    if "campaign_analytics" not in existing_tables:
        op.create_table(
            "campaign_analytics",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("campaign_id", sa.Integer(), sa.ForeignKey("campaigns.id"), nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("reach", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("impressions", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("clicks", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("conversions", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("spend_cents", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("campaign_id", "date", name="uq_campaign_analytics_campaign_date"),
        )
        op.create_index("idx_campaign_analytics_date", "campaign_analytics", ["date"])

    # ---------- Billing ----------
    if "packages" not in existing_tables:
        op.create_table(
            "packages",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("price_cents", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("features", sa.JSON(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("campaign_limit", sa.Integer(), nullable=True),
            sa.Column("monthly_impressions_limit", sa.BigInteger(), nullable=True),
            sa.Column("ads_per_campaign_limit", sa.Integer(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_packages_active_price", "packages", ["is_active", "price_cents"])

    if "subscriptions" not in existing_tables:
        op.create_table(
            "subscriptions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("package_id", sa.Integer(), sa.ForeignKey("packages.id"), nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="active"),
            sa.Column("start_date", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("end_date", sa.DateTime(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_subscriptions_user", "subscriptions", ["user_id"])
        # At most one active subscription per user
        op.create_index(
            "uq_subscriptions_one_active_per_user",
            "subscriptions",
            ["user_id"],
            unique=True,
            postgresql_where=sa.text("status = 'active'"),
            sqlite_where=sa.text("status = 'active'"),
        )

    # ---------- Profiles / notifications ----------
    if "profiles" not in existing_tables:
        op.create_table(
            "profiles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
            ),
            sa.Column("business_name", sa.String(255), nullable=True),
            sa.Column("contact_email", sa.String(320), nullable=True),
            sa.Column("phone", sa.String(64), nullable=True),
            sa.Column("settings", sa.JSON(), nullable=True),
            *_timestamps(),
        )

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("type", sa.String(32), nullable=False),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("data", sa.JSON(), nullable=True),
            sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("expires_at", sa.DateTime(), nullable=True),
        )
        op.create_index("idx_notifications_user_read", "notifications", ["user_id", "read"])

    if "notification_preferences" not in existing_tables:
        op.create_table(
            "notification_preferences",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
            ),
            sa.Column("email_campaigns", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("email_performance", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("email_billing", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("email_system", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("push_campaigns", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("push_performance", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("push_billing", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("push_system", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )


def downgrade() -> None:
    for table in (
        "notification_preferences",
        "notifications",
        "profiles",
        "subscriptions",
        "packages",
        "campaign_analytics",
        "ads",
        "campaigns",
        "audit_events",
        "role_permissions",
        "user_roles",
        "permissions",
        "roles",
        "users",
    ):
        op.drop_table(table)
