"""API request/response schemas for FastAPI endpoints."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, ClassVar, Literal

from pydantic import (
    AnyUrl,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    HttpUrl,
    computed_field,
    model_validator,
)

DealStage = Literal["new", "qualified", "proposal", "negotiation", "won", "lost"]
DealStatus = Literal["open", "won", "lost"]
ActivityType = Literal["note", "call", "email", "meeting", "task"]
SubjectType = Literal["Company", "Contact", "Deal"]


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class _Patch(_Payload):
    """Partial update; only fields present in the request are applied."""

    non_nullable: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_null_required(self) -> _Patch:
        for name in sorted(self.non_nullable & self.model_fields_set):
            if getattr(self, name) is None:
                msg = f"{name} may not be null"
                raise ValueError(msg)
        return self


class _Read(BaseModel):
    model_config = ConfigDict(from_attributes=True)


def payload_values(body: BaseModel, *, partial: bool = False) -> dict[str, Any]:
    """Plain column values from a request body (URLs become strings)."""
    values = body.model_dump(exclude_unset=partial)
    return {k: str(v) if isinstance(v, AnyUrl) else v for k, v in values.items()}


# ---------------------------------------------------------------------------
# Auth and teams
# ---------------------------------------------------------------------------


class RegisterRequest(_Payload):
    email: EmailStr
    password: str = Field(min_length=8, max_length=200)
    name: str = Field(default="", max_length=255)


class LoginRequest(_Payload):
    email: EmailStr
    password: str


class UserResponse(_Read):
    id: str
    email: str
    name: str
    is_super_admin: bool
    current_team_id: str | None = None


class AdminUserCreate(_Payload):
    email: EmailStr
    password: str = Field(min_length=8, max_length=200)
    name: str = Field(default="", max_length=255)
    is_super_admin: bool = False


class AdminUserUpdate(_Patch):
    non_nullable = frozenset({"name", "password", "is_super_admin", "is_active"})

    name: str | None = Field(default=None, min_length=1, max_length=255)
    password: str | None = Field(default=None, min_length=8, max_length=200)
    is_super_admin: bool | None = None
    is_active: bool | None = None


class AdminUserResponse(UserResponse):
    is_active: bool
    created_at: datetime


class TeamCreate(_Payload):
    name: str = Field(min_length=1, max_length=255)


class TeamResponse(_Read):
    id: str
    name: str
    owner_id: str
    personal_team: bool


class MemberAdd(_Payload):
    email: EmailStr
    role: str = "user"


class MemberResponse(_Read):
    id: str
    email: str
    name: str


class RoleCreate(_Payload):
    name: str = Field(min_length=1, max_length=100)
    permissions: list[str] = Field(default_factory=list, max_length=200)


class RoleResponse(BaseModel):
    id: str
    name: str
    permissions: list[str]


class PermissionsResponse(BaseModel):
    team_id: str
    roles: list[str]
    permissions: list[str]
    super_admin: bool


class BulkDeleteRequest(_Payload):
    ids: list[int] = Field(min_length=1, max_length=500)


# ---------------------------------------------------------------------------
# CRM records
# ---------------------------------------------------------------------------


class CompanyCreate(_Payload):
    name: str = Field(min_length=1, max_length=255)
    website: HttpUrl | None = None
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=255)
    address_line1: str | None = Field(default=None, max_length=255)
    address_line2: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=255)
    state: str | None = Field(default=None, max_length=255)
    postal_code: str | None = Field(default=None, max_length=32)
    country: str | None = Field(default=None, max_length=255)
    notes: str | None = None


class CompanyUpdate(_Patch):
    non_nullable = frozenset({"name"})

    name: str | None = Field(default=None, min_length=1, max_length=255)
    website: HttpUrl | None = None
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=255)
    address_line1: str | None = Field(default=None, max_length=255)
    address_line2: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=255)
    state: str | None = Field(default=None, max_length=255)
    postal_code: str | None = Field(default=None, max_length=32)
    country: str | None = Field(default=None, max_length=255)
    notes: str | None = None


class CompanyResponse(_Read):
    id: int
    team_id: str
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
    created_at: datetime
    updated_at: datetime


class ContactCreate(_Payload):
    company_id: int | None = None
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=255)
    job_title: str | None = Field(default=None, max_length=255)
    notes: str | None = None


class ContactUpdate(_Patch):
    non_nullable = frozenset({"first_name", "last_name"})

    company_id: int | None = None
    first_name: str | None = Field(default=None, min_length=1, max_length=255)
    last_name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=255)
    job_title: str | None = Field(default=None, max_length=255)
    notes: str | None = None


class ContactResponse(_Read):
    id: int
    team_id: str
    company_id: int | None = None
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    job_title: str | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class DealCreate(_Payload):
    company_id: int | None = None
    contact_id: int | None = None
    owner_id: str | None = None
    name: str = Field(min_length=1, max_length=255)
    stage: DealStage = "new"
    status: DealStatus = "open"
    amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    close_date: date | None = None
    description: str | None = None


class DealUpdate(_Patch):
    non_nullable = frozenset({"name", "stage", "status", "amount"})

    company_id: int | None = None
    contact_id: int | None = None
    owner_id: str | None = None
    name: str | None = Field(default=None, min_length=1, max_length=255)
    stage: DealStage | None = None
    status: DealStatus | None = None
    amount: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    close_date: date | None = None
    description: str | None = None


class DealResponse(_Read):
    id: int
    team_id: str
    company_id: int | None = None
    contact_id: int | None = None
    owner_id: str | None = None
    name: str
    stage: str
    status: str
    amount: Decimal
    close_date: date | None = None
    description: str | None = None
    created_at: datetime
    updated_at: datetime


class ActivityCreate(_Payload):
    user_id: str | None = None
    subject_type: SubjectType | None = None
    subject_id: int | None = None
    type: ActivityType = "note"
    due_at: datetime | None = None
    completed_at: datetime | None = None
    description: str | None = None


class ActivityUpdate(_Patch):
    non_nullable = frozenset({"type"})

    user_id: str | None = None
    subject_type: SubjectType | None = None
    subject_id: int | None = None
    type: ActivityType | None = None
    due_at: datetime | None = None
    completed_at: datetime | None = None
    description: str | None = None


class ActivityResponse(_Read):
    id: int
    team_id: str
    user_id: str | None = None
    subject_type: str | None = None
    subject_id: int | None = None
    type: str
    due_at: datetime | None = None
    completed_at: datetime | None = None
    description: str | None = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Social records
# ---------------------------------------------------------------------------


class PostCreate(_Payload):
    content: str = Field(min_length=1, max_length=5000)
    image_url: HttpUrl | None = None


class PostUpdate(_Patch):
    non_nullable = frozenset({"content"})

    content: str | None = Field(default=None, min_length=1, max_length=5000)
    image_url: HttpUrl | None = None


class PostResponse(_Read):
    id: int
    user_id: str
    content: str
    image_url: str | None = None
    created_at: datetime
    updated_at: datetime


class CommentCreate(_Payload):
    post_id: int
    content: str = Field(min_length=1, max_length=1000)


class CommentUpdate(_Payload):
    content: str = Field(min_length=1, max_length=1000)


class CommentResponse(_Read):
    id: int
    user_id: str
    post_id: int
    content: str
    created_at: datetime
    updated_at: datetime


class ProfileUpsert(_Payload):
    gender: Literal["male", "female", "other"] | None = None
    birth_date: date | None = None
    location: str | None = Field(default=None, max_length=255)
    website: HttpUrl | None = None
    bio: str | None = Field(default=None, max_length=2000)


class ProfileResponse(_Read):
    id: int
    user_id: str
    gender: str | None = None
    birth_date: date | None = None
    location: str | None = None
    website: str | None = None
    bio: str | None = None
    created_at: datetime
    updated_at: datetime


class AuditLogResponse(_Read):
    id: str
    team_id: str
    user_id: str
    action: str
    resource_type: str
    resource_id: str
    details_json: str
    ip_address: str
    request_id: str
    created_at: datetime
