"""Initial permit-to-work schema

Revision ID: 0001
Revises:
Create Date: 2026-10-16

Tables added:
- users, sites, site_role_assignments: approver resolution
- permits, permit_history, permit_closures: permit lifecycle
- permit_approvals: per-role permit decisions
- permit_extensions, extension_approvals: extension requests and decisions
- notifications, notification_logs: in-app notifications and webhook log
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _approval_columns(parent_column: str, parent_table: str) -> list:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(parent_column, sa.Uuid(), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("approver_id", sa.Uuid(), nullable=False),
        sa.Column("state", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("signature", sa.Text(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.ForeignKeyConstraint([parent_column], [f"{parent_table}.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approver_id"], ["users.id"]),
    ]


def upgrade() -> None:
    """Create the permit workflow tables."""

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # --- sites ---
    op.create_table(
        "sites",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_sites"),
        sa.UniqueConstraint("code", name="uq_sites_code"),
    )

    # --- site_role_assignments ---
    op.create_table(
        "site_role_assignments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("site_id", sa.Uuid(), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("assigned_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_site_role_assignments"),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["assigned_by"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("site_id", "role", name="uq_site_role_assignments_site_role"),
    )
    op.create_index("ix_site_role_assignments_site_id", "site_role_assignments", ["site_id"])
    op.create_index("ix_site_role_assignments_user_id", "site_role_assignments", ["user_id"])

    # --- permits ---
    op.create_table(
        "permits",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("serial", sa.String(50), nullable=False),
        sa.Column("serial_number", sa.Integer(), nullable=False),
        sa.Column("site_id", sa.Uuid(), nullable=False),
        sa.Column("permit_type", sa.String(50), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="initiated"),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("start_reminder_sent_at", sa.DateTime(), nullable=True),
        sa.Column("end_reminder_sent_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_permits"),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
        sa.UniqueConstraint("serial", name="uq_permits_serial"),
        sa.UniqueConstraint("serial_number", name="uq_permits_serial_number"),
    )
    op.create_index("ix_permits_site_id", "permits", ["site_id"])
    op.create_index("ix_permits_status", "permits", ["status"])
    op.create_index("ix_permits_created_by", "permits", ["created_by"])
    op.create_index("ix_permits_created_at", "permits", ["created_at"])

    # --- permit_history ---
    op.create_table(
        "permit_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("permit_id", sa.Uuid(), nullable=False),
        sa.Column("from_status", sa.String(50), nullable=True),
        sa.Column("to_status", sa.String(50), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("extra_data", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_permit_history"),
        sa.ForeignKeyConstraint(["permit_id"], ["permits.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_permit_history_permit_id", "permit_history", ["permit_id"])
    op.create_index("ix_permit_history_created_at", "permit_history", ["created_at"])

    # --- permit_closures ---
    op.create_table(
        "permit_closures",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("permit_id", sa.Uuid(), nullable=False),
        sa.Column("housekeeping_done", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tools_removed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("locks_removed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("area_restored", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("closed_by", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_permit_closures"),
        sa.ForeignKeyConstraint(["permit_id"], ["permits.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["closed_by"], ["users.id"]),
        sa.UniqueConstraint("permit_id", name="uq_permit_closures_permit_id"),
    )

    # --- permit_approvals ---
    op.create_table(
        "permit_approvals",
        *_approval_columns("permit_id", "permits"),
        sa.PrimaryKeyConstraint("id", name="pk_permit_approvals"),
        sa.UniqueConstraint("permit_id", "role", name="uq_permit_approvals_permit_role"),
    )
    op.create_index("ix_permit_approvals_permit_id", "permit_approvals", ["permit_id"])
    op.create_index("ix_permit_approvals_approver_id", "permit_approvals", ["approver_id"])
    op.create_index("ix_permit_approvals_state", "permit_approvals", ["state"])

    # --- permit_extensions ---
    op.create_table(
        "permit_extensions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("permit_id", sa.Uuid(), nullable=False),
        sa.Column("requested_by", sa.Uuid(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("original_end_time", sa.DateTime(), nullable=False),
        sa.Column("new_end_time", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending_approval"),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_permit_extensions"),
        sa.ForeignKeyConstraint(["permit_id"], ["permits.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["requested_by"], ["users.id"]),
    )
    op.create_index("ix_permit_extensions_permit_id", "permit_extensions", ["permit_id"])
    op.create_index("ix_permit_extensions_status", "permit_extensions", ["status"])
    op.create_index("ix_permit_extensions_created_at", "permit_extensions", ["created_at"])
    # At most one pending extension request per permit
    op.create_index(
        "uq_permit_extensions_open_per_permit",
        "permit_extensions",
        ["permit_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending_approval'"),
        sqlite_where=sa.text("status = 'pending_approval'"),
    )

    # --- extension_approvals ---
    op.create_table(
        "extension_approvals",
        *_approval_columns("extension_id", "permit_extensions"),
        sa.PrimaryKeyConstraint("id", name="pk_extension_approvals"),
        sa.UniqueConstraint("extension_id", "role", name="uq_extension_approvals_extension_role"),
    )
    op.create_index("ix_extension_approvals_extension_id", "extension_approvals", ["extension_id"])
    op.create_index("ix_extension_approvals_approver_id", "extension_approvals", ["approver_id"])
    op.create_index("ix_extension_approvals_state", "extension_approvals", ["state"])

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("permit_id", sa.Uuid(), nullable=True),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["permit_id"], ["permits.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_permit_id", "notifications", ["permit_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])

    # --- notification_logs ---
    op.create_table(
        "notification_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("channel", sa.String(50), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("recipient", sa.String(512), nullable=False),
        sa.Column("permit_id", sa.Uuid(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_notification_logs"),
        sa.ForeignKeyConstraint(["permit_id"], ["permits.id"], ondelete="SET NULL"),
    )


def downgrade() -> None:
    """Drop the permit workflow tables."""
    op.drop_table("notification_logs")
    op.drop_table("notifications")
    op.drop_table("extension_approvals")
    op.drop_index("uq_permit_extensions_open_per_permit", table_name="permit_extensions")
    op.drop_table("permit_extensions")
    op.drop_table("permit_approvals")
    op.drop_table("permit_closures")
    op.drop_table("permit_history")
    op.drop_table("permits")
    op.drop_table("site_role_assignments")
    op.drop_table("sites")
    op.drop_table("users")
