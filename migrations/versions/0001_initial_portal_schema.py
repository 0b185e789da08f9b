"""initial portal schema

Creates the portal collections:
  - users                      - identity-linked profiles gated by admin approval
  - projects, project_members  - client engagements and their eligible contractors
  - deliveries                 - review-tracked work items (+ checklist, comments, attachments)
  - safety_docs                - contractor compliance records
  - notifications              - in-app notifications, read flag only moves false → true

Tables are created only when missing, so a database that already received
them through db.create_all() in development can be stamped and upgraded.

Revision ID: 0001_initial_portal
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '0001_initial_portal'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing = set(sa_inspect(bind).get_table_names())

    # ── Users ─────────────────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=128), nullable=False, comment="Identity provider uid"),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("active", sa.Boolean(), nullable=False),
            sa.Column("pix_key", sa.String(length=200), nullable=True, comment="Payment key"),
            sa.Column("photo_url", sa.String(length=1000), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_users_role", "users", ["role"])
        op.create_index("ix_users_status", "users", ["status"])
        op.create_index("ix_users_deleted_at", "users", ["deleted_at"])

    # ── Projects ──────────────────────────────────────────────────────────
    if "projects" not in existing:
        op.create_table(
            "projects",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("client", sa.String(length=200), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("external_link", sa.String(length=1000), nullable=True),
            sa.Column("manager_name", sa.String(length=200), nullable=False),
            sa.Column("manager_uid", sa.String(length=128), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False,
                      comment="EM_ANDAMENTO | PAUSADO | CONCLUIDO | CANCELADO"),
            sa.Column("completion_rate", sa.Integer(), nullable=False, comment="0-100"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_manager_uid", "projects", ["manager_uid"])
        op.create_index("ix_projects_deleted_at", "projects", ["deleted_at"])

    if "project_members" not in existing:
        op.create_table(
            "project_members",
            sa.Column("project_id", sa.String(length=36), nullable=False),
            sa.Column("user_uid", sa.String(length=128), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("project_id", "user_uid"),
        )
        op.create_index("ix_project_members_user_uid", "project_members", ["user_uid"])

    # ── Deliveries ────────────────────────────────────────────────────────
    if "deliveries" not in existing:
        op.create_table(
            "deliveries",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=False),
            sa.Column("client_name", sa.String(length=200), nullable=False),
            sa.Column("project_name", sa.String(length=200), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("deadline", sa.Date(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("priority", sa.String(length=10), nullable=False),
            sa.Column("provider_uid", sa.String(length=128), nullable=False),
            sa.Column("provider_name", sa.String(length=200), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_deliveries_project_id", "deliveries", ["project_id"])
        op.create_index("ix_deliveries_status", "deliveries", ["status"])
        op.create_index("ix_deliveries_provider_uid", "deliveries", ["provider_uid"])
        op.create_index("ix_deliveries_deleted_at", "deliveries", ["deleted_at"])

    for table, extra in (
        ("delivery_checklist_items", [
            sa.Column("label", sa.String(length=300), nullable=False),
            sa.Column("completed", sa.Boolean(), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False),
        ]),
        ("delivery_comments", [
            sa.Column("author_uid", sa.String(length=128), nullable=False),
            sa.Column("author_name", sa.String(length=200), nullable=False),
            sa.Column("text", sa.Text(), nullable=False),
            sa.Column("display_date", sa.String(length=30), nullable=False),
        ]),
        ("delivery_attachments", [
            sa.Column("name", sa.String(length=300), nullable=False),
            sa.Column("url", sa.String(length=1000), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("uploader_uid", sa.String(length=128), nullable=False),
            sa.Column("uploader_name", sa.String(length=200), nullable=False),
            sa.Column("display_date", sa.String(length=30), nullable=False),
        ]),
    ):
        if table in existing:
            continue
        op.create_table(
            table,
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("delivery_id", sa.String(length=36), nullable=False),
            *extra,
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["delivery_id"], ["deliveries.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_delivery_id", table, ["delivery_id"])

    # ── Safety documents ──────────────────────────────────────────────────
    if "safety_docs" not in existing:
        op.create_table(
            "safety_docs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("owner_uid", sa.String(length=128), nullable=False),
            sa.Column("doc_type", sa.String(length=10), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("issue_date", sa.Date(), nullable=False),
            sa.Column("expiry_date", sa.Date(), nullable=True),
            sa.Column("url", sa.String(length=1000), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_by_uid", sa.String(length=128), nullable=False),
            sa.Column("created_by_name", sa.String(length=200), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_safety_docs_owner_uid", "safety_docs", ["owner_uid"])

    # ── Notifications ─────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("recipient_uid", sa.String(length=128), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False),
            sa.Column("title", sa.String(length=400), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=True),
            sa.Column("delivery_id", sa.String(length=36), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=False),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_recipient_uid", "notifications", ["recipient_uid"])
        op.create_index("ix_notifications_created_at", "notifications", ["created_at"])


def downgrade():
    for table in (
        "notifications",
        "safety_docs",
        "delivery_attachments",
        "delivery_comments",
        "delivery_checklist_items",
        "deliveries",
        "project_members",
        "projects",
        "users",
    ):
        op.drop_table(table)
