"""initial schema: users, teams, roles, CRM records, social records, audit

Revision ID: 7c1d2e3f4a5b
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
import sqlmodel.sql.sqltypes
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7c1d2e3f4a5b"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_STR = sqlmodel.sql.sqltypes.AutoString


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    """Create every table with its team-leading composite indexes."""
    # --- identity and tenancy ---
    op.create_table(
        "users",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("email", _STR(), nullable=False),
        sa.Column("name", _STR(), nullable=False, server_default=""),
        sa.Column("password_hash", _STR(), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_super_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("current_team_id", _STR(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "teams",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("owner_id", _STR(), nullable=False),
        sa.Column("name", _STR(), nullable=False),
        sa.Column("personal_team", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_teams_owner_id"), "teams", ["owner_id"])

    op.create_table(
        "team_memberships",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("team_id", _STR(), nullable=False),
        sa.Column("user_id", _STR(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("team_id", "user_id"),
    )
    op.create_index(op.f("ix_team_memberships_team_id"), "team_memberships", ["team_id"])
    op.create_index(op.f("ix_team_memberships_user_id"), "team_memberships", ["user_id"])

    op.create_table(
        "roles",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("team_id", _STR(), nullable=False),
        sa.Column("name", _STR(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("team_id", "name"),
    )
    op.create_index(op.f("ix_roles_team_id"), "roles", ["team_id"])

    op.create_table(
        "role_permissions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("role_id", _STR(), nullable=False),
        sa.Column("permission", _STR(), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("role_id", "permission"),
    )
    op.create_index(op.f("ix_role_permissions_role_id"), "role_permissions", ["role_id"])

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", _STR(), nullable=False),
        sa.Column("role_id", _STR(), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "role_id"),
    )
    op.create_index(op.f("ix_user_roles_user_id"), "user_roles", ["user_id"])
    op.create_index(op.f("ix_user_roles_role_id"), "user_roles", ["role_id"])

    # --- CRM records ---
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_id", _STR(), nullable=False),
        sa.Column("name", _STR(), nullable=False),
        sa.Column("website", _STR(), nullable=True),
        sa.Column("email", _STR(), nullable=True),
        sa.Column("phone", _STR(), nullable=True),
        sa.Column("address_line1", _STR(), nullable=True),
        sa.Column("address_line2", _STR(), nullable=True),
        sa.Column("city", _STR(), nullable=True),
        sa.Column("state", _STR(), nullable=True),
        sa.Column("postal_code", _STR(), nullable=True),
        sa.Column("country", _STR(), nullable=True),
        sa.Column("notes", _STR(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_companies_team_id"), "companies", ["team_id"])
    op.create_index("ix_companies_team_name", "companies", ["team_id", "name"])

    op.create_table(
        "contacts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_id", _STR(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("first_name", _STR(), nullable=False),
        sa.Column("last_name", _STR(), nullable=False),
        sa.Column("email", _STR(), nullable=True),
        sa.Column("phone", _STR(), nullable=True),
        sa.Column("job_title", _STR(), nullable=True),
        sa.Column("notes", _STR(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_contacts_team_id"), "contacts", ["team_id"])
    op.create_index("ix_contacts_team_name", "contacts", ["team_id", "last_name", "first_name"])
    op.create_index("ix_contacts_team_email", "contacts", ["team_id", "email"])

    op.create_table(
        "deals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_id", _STR(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("contact_id", sa.Integer(), nullable=True),
        sa.Column("owner_id", _STR(), nullable=True),
        sa.Column("name", _STR(), nullable=False),
        sa.Column("stage", _STR(), nullable=False, server_default="new"),
        sa.Column("status", _STR(), nullable=False, server_default="open"),
        sa.Column("amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("close_date", sa.Date(), nullable=True),
        sa.Column("description", _STR(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.id"]),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_deals_team_id"), "deals", ["team_id"])
    op.create_index("ix_deals_team_status_stage", "deals", ["team_id", "status", "stage"])

    op.create_table(
        "activities",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_id", _STR(), nullable=False),
        sa.Column("user_id", _STR(), nullable=True),
        sa.Column("subject_type", _STR(), nullable=True),
        sa.Column("subject_id", sa.Integer(), nullable=True),
        sa.Column("type", _STR(), nullable=False, server_default="note"),
        sa.Column("due_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("description", _STR(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_activities_team_id"), "activities", ["team_id"])
    op.create_index("ix_activities_team_type_due", "activities", ["team_id", "type", "due_at"])

    # --- author-owned social records ---
    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", _STR(), nullable=False),
        sa.Column("content", _STR(), nullable=False),
        sa.Column("image_url", _STR(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_posts_user_id"), "posts", ["user_id"])

    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", _STR(), nullable=False),
        sa.Column("post_id", sa.Integer(), nullable=False),
        sa.Column("content", _STR(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_comments_user_id"), "comments", ["user_id"])
    op.create_index(op.f("ix_comments_post_id"), "comments", ["post_id"])

    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", _STR(), nullable=False),
        sa.Column("gender", _STR(), nullable=True),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("location", _STR(), nullable=True),
        sa.Column("website", _STR(), nullable=True),
        sa.Column("bio", _STR(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_profiles_user_id"), "profiles", ["user_id"], unique=True)

    # --- audit trail ---
    op.create_table(
        "audit_logs",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("team_id", _STR(), nullable=False, server_default=""),
        sa.Column("user_id", _STR(), nullable=False, server_default=""),
        sa.Column("action", _STR(), nullable=False),
        sa.Column("resource_type", _STR(), nullable=False, server_default=""),
        sa.Column("resource_id", _STR(), nullable=False, server_default=""),
        sa.Column("details_json", _STR(), nullable=False, server_default="{}"),
        sa.Column("ip_address", _STR(), nullable=False, server_default=""),
        sa.Column("request_id", _STR(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_audit_logs_team_id"), "audit_logs", ["team_id"])
    op.create_index(op.f("ix_audit_logs_action"), "audit_logs", ["action"])


def downgrade() -> None:
    """Drop every table, children first."""
    for table in (
        "audit_logs",
        "profiles",
        "comments",
        "posts",
        "activities",
        "deals",
        "contacts",
        "companies",
        "user_roles",
        "role_permissions",
        "roles",
        "team_memberships",
        "teams",
        "users",
    ):
        op.drop_table(table)
