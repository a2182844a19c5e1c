"""Initial schema: users, tickets, ticket_history, activity_logs.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(30), nullable=False, server_default="employee"),
        sa.Column("employee_id", sa.Integer, nullable=True),
        sa.Column(
            "manager_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("last_login_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("idx_users_username", "users", ["username"], unique=True)
    op.create_index("idx_users_manager_id", "users", ["manager_id"])

    # --- tickets ---
    op.execute("CREATE SEQUENCE ticket_number_seq START 1")
    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("ticket_id", sa.String(20), nullable=False),
        sa.Column("summary", sa.String(255), nullable=True),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="Open"),
        sa.Column("urgency", sa.String(10), nullable=False, server_default="Medium"),
        sa.Column("impact", sa.String(10), nullable=False, server_default="Medium"),
        sa.Column("priority", sa.String(10), nullable=False, server_default="Medium"),
        sa.Column(
            "submitted_by_id",
            sa.Integer,
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column(
            "assigned_to_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("resolution_notes", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "status IN ('Open', 'In Progress', 'Resolved', 'Closed')",
            name="ck_tickets_status",
        ),
        sa.CheckConstraint(
            "urgency IN ('Low', 'Medium', 'High', 'Critical')", name="ck_tickets_urgency"
        ),
        sa.CheckConstraint(
            "impact IN ('Low', 'Medium', 'High', 'Critical')", name="ck_tickets_impact"
        ),
        sa.CheckConstraint(
            "priority IN ('Low', 'Medium', 'High', 'Critical')", name="ck_tickets_priority"
        ),
    )
    op.create_index("idx_tickets_ticket_id", "tickets", ["ticket_id"], unique=True)
    op.create_index("idx_tickets_status", "tickets", ["status"])
    op.create_index("idx_tickets_submitted_by", "tickets", ["submitted_by_id"])
    op.create_index("idx_tickets_assigned_to", "tickets", ["assigned_to_id"])
    op.create_index("idx_tickets_created_at", "tickets", ["created_at"])

    # --- ticket_history ---
    op.create_table(
        "ticket_history",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "ticket_id",
            sa.Integer,
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("previous_value", sa.Text, nullable=True),
        sa.Column("new_value", sa.Text, nullable=True),
        sa.Column("change_description", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("idx_ticket_history_ticket_id", "ticket_history", ["ticket_id"])

    # --- activity_logs ---
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.String(50), nullable=True),
        sa.Column("details", postgresql.JSONB, nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("idx_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("idx_activity_logs_entity", "activity_logs", ["entity_type", "entity_id"])
    op.create_index("idx_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("ticket_history")
    op.drop_table("tickets")
    op.execute("DROP SEQUENCE IF EXISTS ticket_number_seq")
    op.drop_table("users")
