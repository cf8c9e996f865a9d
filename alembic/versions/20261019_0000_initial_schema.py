"""Initial schema for alert subscriptions and tracked wallets.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "alert_subscriptions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("owner_wallet", sa.String(44), nullable=True),
        sa.Column("chat_id", sa.String(64), nullable=True),
        sa.Column("alert_type", sa.String(32), nullable=False),
        sa.Column("priority", sa.String(8), nullable=False, server_default="MEDIUM"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("config", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_alert_subscriptions_user", "alert_subscriptions", ["user_id"])
    op.create_index(
        "idx_alert_subscriptions_type_enabled",
        "alert_subscriptions",
        ["alert_type", "enabled"],
    )

    op.create_table(
        "tracked_wallets",
        sa.Column("address", sa.String(44), nullable=False),
        sa.Column("feed", sa.String(16), nullable=False),
        sa.Column("label", sa.String(128), nullable=False, server_default=""),
        sa.Column("kol_username", sa.String(64), nullable=True),
        sa.Column("kol_name", sa.String(128), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("address"),
    )
    op.create_index("idx_tracked_wallets_feed_active", "tracked_wallets", ["feed", "active"])


def downgrade() -> None:
    op.drop_index("idx_tracked_wallets_feed_active", table_name="tracked_wallets")
    op.drop_table("tracked_wallets")
    op.drop_index("idx_alert_subscriptions_type_enabled", table_name="alert_subscriptions")
    op.drop_index("idx_alert_subscriptions_user", table_name="alert_subscriptions")
    op.drop_table("alert_subscriptions")
