"""Initial schema: machines, bookings, users, identities, feedback.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Machines table
    op.create_table(
        "machines",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'available'")),
        sa.Column("queue_count", sa.Integer(), nullable=True),
        sa.Column("time_remaining", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('available', 'running', 'waiting', 'out-of-order')",
            name="check_machine_status",
        ),
        sa.CheckConstraint("status != 'waiting' OR (queue_count IS NOT NULL AND queue_count >= 1)", name="check_waiting_has_queue"),
        sa.CheckConstraint("status != 'running' OR time_remaining IS NOT NULL", name="check_running_has_time"),
        sa.CheckConstraint(
            "status NOT IN ('available', 'out-of-order') OR (queue_count IS NULL AND time_remaining IS NULL)",
            name="check_idle_has_no_aux_fields",
        ),
    )
    # Machine listings are always in creation order
    op.create_index("ix_machines_created_at", "machines", ["created_at"])

    # Bookings table. No foreign keys: a machine removal and the release of
    # its bookings are written in one batch, in either order.
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("machine_id", sa.String(64), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("wash_started_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        # Database-level backstop for one active booking per user
        sa.UniqueConstraint("user_id", name="uq_one_booking_per_user"),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_machine_id", "bookings", ["machine_id"])

    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'user'")),
        sa.Column("active_booking", sa.String(64), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("role IN ('user', 'admin')", name="check_user_role"),
    )
    op.create_index("ix_users_email", "users", ["email"])

    # Identities table
    op.create_table(
        "identities",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_identities_email", "identities", ["email"], unique=True)

    # Feedback table
    op.create_table(
        "feedback",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("user_email", sa.String(255), nullable=False),
        sa.Column("subject", sa.String(20), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("subject IN ('issue', 'suggestion', 'other')", name="check_feedback_subject"),
    )
    op.create_index("ix_feedback_user_id", "feedback", ["user_id"])


def downgrade() -> None:
    op.drop_table("feedback")
    op.drop_table("identities")
    op.drop_table("users")
    op.drop_table("bookings")
    op.drop_table("machines")
