"""create_gateway_tables

Creates shops, platform_sessions and error_logs.

Revision ID: 3f9a1c7e2b40
Revises:
Create Date: 2026-10-19 10:12:44.081377

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "3f9a1c7e2b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create gateway tables."""
    op.create_table(
        "shops",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("shop", sa.String(length=255), nullable=False),
        sa.Column("scopes", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column(
            "installed_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("uninstalled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_shops_shop", "shops", ["shop"], unique=True)

    op.create_table(
        "platform_sessions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("shop", sa.String(length=255), nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("scopes", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("shop"),
    )
    op.create_index(
        "ix_platform_sessions_token_hash",
        "platform_sessions",
        ["token_hash"],
        unique=True,
    )

    op.create_table(
        "error_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("kind", sa.String(length=64), nullable=False),
        sa.Column("shop", sa.String(length=255), nullable=True),
        sa.Column("path", sa.String(length=500), nullable=True),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_error_logs_kind", "error_logs", ["kind"])
    op.create_index("ix_error_logs_shop", "error_logs", ["shop"])


def downgrade() -> None:
    """Drop gateway tables."""
    op.drop_index("ix_error_logs_shop", table_name="error_logs")
    op.drop_index("ix_error_logs_kind", table_name="error_logs")
    op.drop_table("error_logs")
    op.drop_index("ix_platform_sessions_token_hash", table_name="platform_sessions")
    op.drop_table("platform_sessions")
    op.drop_index("ix_shops_shop", table_name="shops")
    op.drop_table("shops")
