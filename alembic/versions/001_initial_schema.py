"""Initial schema

Revision ID: 001
Revises:
Create Date: 2024-11-01 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Check if tables already exist and skip if so
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if "projects" in existing_tables:
        return

    # Create projects table
    op.create_table(
        "projects",
        sa.Column("project_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_projects_user_id", "projects", ["user_id"])

    # Create sessions table
    op.create_table(
        "sessions",
        sa.Column("session_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("project_id", UUID(as_uuid=True), sa.ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("ended_at", sa.DateTime),
    )
    # At most one active session per (user, project)
    op.create_index(
        "uq_sessions_active_per_project",
        "sessions",
        ["user_id", "project_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    # Create runs table
    op.create_table(
        "runs",
        sa.Column("run_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("project_id", UUID(as_uuid=True), sa.ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False),
        sa.Column("session_id", UUID(as_uuid=True), sa.ForeignKey("sessions.session_id", ondelete="SET NULL")),
        sa.Column("input", sa.Text, nullable=False),
        sa.Column("output", sa.Text, nullable=False, server_default=""),
        sa.Column("model", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("custom_name", sa.Text),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now(), onupdate=sa.func.now()),
    )
    op.create_index("idx_runs_project_created", "runs", ["project_id", "created_at"])

    # Create billing_info table
    op.create_table(
        "billing_info",
        sa.Column("user_id", sa.Text, primary_key=True),
        sa.Column("plan", sa.Text, nullable=False, server_default="free"),
        sa.Column("credits", sa.Integer, nullable=False, server_default="0"),
        sa.Column("credits_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now(), onupdate=sa.func.now()),
        sa.CheckConstraint("credits >= 0", name="ck_billing_info_credits_non_negative"),
    )

    # Create credit_usage_history table
    op.create_table(
        "credit_usage_history",
        sa.Column("entry_pk", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text, sa.ForeignKey("billing_info.user_id", ondelete="CASCADE"), nullable=False),
        sa.Column("entry_type", sa.Text, nullable=False),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("metadata", JSONB),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_credit_history_user_created", "credit_usage_history", ["user_id", "created_at"])

    # Create memories table
    op.create_table(
        "memories",
        sa.Column("memory_pk", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("memory_id", UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("project_id", UUID(as_uuid=True), sa.ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("embedding", JSONB, nullable=False),
        sa.Column("metadata", JSONB),
        sa.Column("run_id", UUID(as_uuid=True), sa.ForeignKey("runs.run_id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_memories_user_project", "memories", ["user_id", "project_id"])
    op.create_index("idx_memories_project_created", "memories", ["project_id", "created_at"])


def downgrade() -> None:
    op.drop_table("memories")
    op.drop_table("credit_usage_history")
    op.drop_table("billing_info")
    op.drop_table("runs")
    op.drop_table("sessions")
    op.drop_table("projects")
