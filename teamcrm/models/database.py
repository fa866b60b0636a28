"""SQLModel database table models."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import Index, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    """Return current UTC time as naive datetime for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _new_uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Identity and tenancy
# ---------------------------------------------------------------------------


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str = ""
    password_hash: str = ""
    is_active: bool = Field(default=True)
    is_super_admin: bool = Field(default=False)
    current_team_id: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class Team(SQLModel, table=True):
    __tablename__ = "teams"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    owner_id: str = Field(foreign_key="users.id", index=True)
    name: str
    personal_team: bool = Field(default=False)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class TeamMembership(SQLModel, table=True):
    __tablename__ = "team_memberships"
    __table_args__ = (UniqueConstraint("team_id", "user_id"),)

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    team_id: str = Field(foreign_key="teams.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    created_at: datetime = Field(default_factory=_utc_now)


class Role(SQLModel, table=True):
    __tablename__ = "roles"
    __table_args__ = (UniqueConstraint("team_id", "name"),)

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    team_id: str = Field(foreign_key="teams.id", index=True)
    name: str
    created_at: datetime = Field(default_factory=_utc_now)


class RolePermission(SQLModel, table=True):
    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role_id", "permission"),)

    id: int | None = Field(default=None, primary_key=True)
    role_id: str = Field(foreign_key="roles.id", index=True)
    permission: str  # {action}:{resource}


class UserRole(SQLModel, table=True):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role_id"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    role_id: str = Field(foreign_key="roles.id", index=True)


# ---------------------------------------------------------------------------
# CRM records (always owned by a team)
# ---------------------------------------------------------------------------


class Company(SQLModel, table=True):
    __tablename__ = "companies"
    __table_args__ = (Index("ix_companies_team_name", "team_id", "name"),)

    id: int | None = Field(default=None, primary_key=True)
    team_id: str = Field(foreign_key="teams.id", index=True)
    name: str
    website: str | None = None
    email: str | None = None
    phone: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class Contact(SQLModel, table=True):
    __tablename__ = "contacts"
    __table_args__ = (
        Index("ix_contacts_team_name", "team_id", "last_name", "first_name"),
        Index("ix_contacts_team_email", "team_id", "email"),
    )

    id: int | None = Field(default=None, primary_key=True)
    team_id: str = Field(foreign_key="teams.id", index=True)
    company_id: int | None = Field(default=None, foreign_key="companies.id")
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    job_title: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class Deal(SQLModel, table=True):
    __tablename__ = "deals"
    __table_args__ = (Index("ix_deals_team_status_stage", "team_id", "status", "stage"),)

    id: int | None = Field(default=None, primary_key=True)
    team_id: str = Field(foreign_key="teams.id", index=True)
    company_id: int | None = Field(default=None, foreign_key="companies.id")
    contact_id: int | None = Field(default=None, foreign_key="contacts.id")
    owner_id: str | None = Field(default=None, foreign_key="users.id")
    name: str
    stage: str = Field(default="new")  # new | qualified | proposal | negotiation | won | lost
    status: str = Field(default="open")  # open | won | lost
    amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    close_date: date | None = None
    description: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class Activity(SQLModel, table=True):
    __tablename__ = "activities"
    __table_args__ = (Index("ix_activities_team_type_due", "team_id", "type", "due_at"),)

    id: int | None = Field(default=None, primary_key=True)
    team_id: str = Field(foreign_key="teams.id", index=True)
    user_id: str | None = Field(default=None, foreign_key="users.id")
    subject_type: str | None = None  # Company | Contact | Deal
    subject_id: int | None = None
    type: str = Field(default="note")  # note | call | email | meeting | task
    due_at: datetime | None = None
    completed_at: datetime | None = None
    description: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Social records (owned by their author)
# ---------------------------------------------------------------------------


class Post(SQLModel, table=True):
    __tablename__ = "posts"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    content: str
    image_url: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class Comment(SQLModel, table=True):
    __tablename__ = "comments"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    post_id: int = Field(foreign_key="posts.id", index=True)
    content: str
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class Profile(SQLModel, table=True):
    __tablename__ = "profiles"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", unique=True, index=True)
    gender: str | None = None
    birth_date: date | None = None
    location: str | None = None
    website: str | None = None
    bio: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    team_id: str = Field(default="", index=True)
    user_id: str = ""
    action: str = Field(index=True)
    resource_type: str = ""
    resource_id: str = ""
    details_json: str = "{}"
    ip_address: str = ""
    request_id: str = ""
    created_at: datetime = Field(default_factory=_utc_now)
