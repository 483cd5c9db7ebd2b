"""create gateway tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19

accounts, tiers, api_keys, upstream_credentials, usage_logs.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("role", sa.String(10), nullable=False, server_default="user"),
        sa.Column("usage", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("payg_due", sa.Numeric(14, 8), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("role IN ('user', 'admin')", name="ck_accounts_role"),
    )

    op.create_table(
        "tiers",
        sa.Column("name", sa.String(10), primary_key=True),
        sa.Column("default_model", sa.String(100), nullable=False),
        sa.Column("rate_limit_per_min", sa.Integer(), nullable=False),
        sa.Column("monthly_quota", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("price_per_token", sa.Numeric(14, 8), nullable=False, server_default="0"),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("features", sa.JSON(), nullable=False),
        sa.CheckConstraint("name IN ('free', 'pro', 'payg')", name="ck_tiers_name"),
        sa.CheckConstraint("rate_limit_per_min > 0", name="ck_tiers_rate_limit_pos"),
        sa.CheckConstraint("monthly_quota >= 0", name="ck_tiers_quota_non_neg"),
        sa.CheckConstraint("price_per_token >= 0", name="ck_tiers_price_non_neg"),
    )

    op.create_table(
        "api_keys",
        sa.Column("key", sa.String(21), primary_key=True),
        sa.Column("tier", sa.String(10), nullable=False),
        sa.Column("status", sa.String(10), nullable=False, server_default="active"),
        sa.Column("owner_id", sa.String(128), nullable=False),
        sa.Column("monthly_quota", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("usage_this_month", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("linked_upstream_credentials", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.ForeignKeyConstraint(["tier"], ["tiers.name"]),
        sa.ForeignKeyConstraint(["owner_id"], ["accounts.id"]),
        sa.CheckConstraint("tier IN ('free', 'pro', 'payg')", name="ck_api_keys_tier"),
        sa.CheckConstraint("status IN ('active', 'revoked')", name="ck_api_keys_status"),
        sa.CheckConstraint("monthly_quota >= 0", name="ck_api_keys_quota_non_neg"),
        sa.CheckConstraint("usage_this_month >= 0", name="ck_api_keys_usage_non_neg"),
    )
    op.create_index("ix_api_keys_owner_id", "api_keys", ["owner_id"])

    op.create_table(
        "upstream_credentials",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("env_name", sa.String(128), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="healthy"),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('healthy', 'rate_limited', 'unhealthy')",
            name="ck_upstream_credentials_status",
        ),
    )

    op.create_table(
        "usage_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("api_key", sa.String(21), nullable=False),
        sa.Column("owner_id", sa.String(128), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("endpoint", sa.String(255), nullable=False),
        sa.Column("tokens_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_code", sa.String(64), nullable=True),
        sa.Column("upstream_credential_used", sa.String(64), nullable=True),
        sa.CheckConstraint("tokens_used >= 0", name="ck_usage_logs_tokens_non_neg"),
    )
    op.create_index("ix_usage_logs_timestamp", "usage_logs", ["timestamp"])
    op.create_index("ix_usage_logs_api_key", "usage_logs", ["api_key"])
    op.create_index("ix_usage_logs_owner_id", "usage_logs", ["owner_id"])


def downgrade() -> None:
    op.drop_index("ix_usage_logs_owner_id", table_name="usage_logs")
    op.drop_index("ix_usage_logs_api_key", table_name="usage_logs")
    op.drop_index("ix_usage_logs_timestamp", table_name="usage_logs")
    op.drop_table("usage_logs")
    op.drop_table("upstream_credentials")
    op.drop_index("ix_api_keys_owner_id", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_table("tiers")
    op.drop_table("accounts")
