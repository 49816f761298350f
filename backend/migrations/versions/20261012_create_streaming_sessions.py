"""
20261012_create_streaming_sessions

Create streaming_sessions table for viewer admission control.
orders/events are owned by other services and are not created here.

Revises:
Create Date: 2026-10-12
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261012_streaming_sessions"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "streaming_sessions",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("app_id", sa.String(255), nullable=False),
        sa.Column("tenant_id", sa.String(255), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("user_email", sa.String(255), nullable=True),
        sa.Column("user_name", sa.String(255), nullable=True),
        sa.Column("session_token", sa.String(255), nullable=False),
        sa.Column("ip_address", sa.String(50), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("status", sa.String(50), server_default="active", nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_index(
        "ix_streaming_sessions_session_token",
        "streaming_sessions",
        ["session_token"],
        unique=True,
    )
    op.create_index("ix_streaming_sessions_user_id", "streaming_sessions", ["user_id"])
    op.create_index("ix_streaming_sessions_status", "streaming_sessions", ["status"])
    op.create_index(
        "ix_streaming_sessions_order_status",
        "streaming_sessions",
        ["tenant_id", "order_id", "status"],
    )


def downgrade():
    op.drop_index("ix_streaming_sessions_order_status", table_name="streaming_sessions")
    op.drop_index("ix_streaming_sessions_status", table_name="streaming_sessions")
    op.drop_index("ix_streaming_sessions_user_id", table_name="streaming_sessions")
    op.drop_index("ix_streaming_sessions_session_token", table_name="streaming_sessions")
    op.drop_table("streaming_sessions")
