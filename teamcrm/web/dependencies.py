"""FastAPI dependency injection and shared per-app services."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import Depends, Request

from teamcrm.audit.logger import AuditLogger
from teamcrm.auth.gate import PermissionGate
from teamcrm.auth.permissions import permission_name
from teamcrm.auth.session import SESSION_COOKIE, SessionAuth
from teamcrm.exceptions import AuthenticationError, AuthorizationError
from teamcrm.models.database import Activity, Comment, Company, Contact, Deal, Post, Profile, User
from teamcrm.storage.repositories.roles import RoleRepository
from teamcrm.storage.repositories.teams import TeamRepository
from teamcrm.storage.repositories.users import DatabaseUserRepository
from teamcrm.tenancy.context import ActorContext, TenantContext
from teamcrm.tenancy.resolver import TenantResolver
from teamcrm.tenancy.scoping import (
    AUTHOR_SCOPE,
    Dependent,
    MemberReference,
    MorphReference,
    ScopedReference,
    ScopedRepository,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from teamcrm.config.settings import Settings

logger = structlog.get_logger(__name__)

TEAM_HEADER = "x-team-id"

_SUBJECTS = {"Company": Company, "Contact": Contact, "Deal": Deal}


def _subject_dependent(name: str) -> Dependent:
    return Dependent(
        Activity,
        "subject_id",
        match={"subject_type": name},
        also_clear=("subject_type",),
    )


@dataclass
class Services:
    """Everything a request handler needs, wired once per application."""

    engine: AsyncEngine
    settings: Settings
    sessions: SessionAuth
    users: DatabaseUserRepository
    teams: TeamRepository
    roles: RoleRepository
    auditor: AuditLogger
    gate: PermissionGate
    resolver: TenantResolver
    crm: dict[str, ScopedRepository[Any]]
    posts: ScopedRepository[Post]
    comments: ScopedRepository[Comment]
    profiles: ScopedRepository[Profile]


def build_services(engine: AsyncEngine, settings: Settings) -> Services:
    roles = RoleRepository(engine)
    teams = TeamRepository(engine)
    auditor = AuditLogger(engine, enabled=settings.audit_enabled)

    crm: dict[str, ScopedRepository[Any]] = {
        "Company": ScopedRepository(
            engine,
            Company,
            dependents=(
                Dependent(Contact, "company_id"),
                Dependent(Deal, "company_id"),
                _subject_dependent("Company"),
            ),
            filter_fields=("country", "city"),
            search_fields=("name", "email", "website"),
            order_by=("name", "id"),
        ),
        "Contact": ScopedRepository(
            engine,
            Contact,
            references=(ScopedReference("company_id", Company),),
            dependents=(Dependent(Deal, "contact_id"), _subject_dependent("Contact")),
            filter_fields=("company_id",),
            search_fields=("first_name", "last_name", "email"),
            order_by=("last_name", "first_name", "id"),
        ),
        "Deal": ScopedRepository(
            engine,
            Deal,
            references=(
                ScopedReference("company_id", Company),
                ScopedReference("contact_id", Contact),
                MemberReference("owner_id"),
            ),
            dependents=(_subject_dependent("Deal"),),
            filter_fields=("status", "stage", "company_id", "contact_id", "owner_id"),
            search_fields=("name",),
            order_by=("id",),
        ),
        "Activity": ScopedRepository(
            engine,
            Activity,
            references=(
                MemberReference("user_id"),
                MorphReference("subject_type", "subject_id", models=_SUBJECTS),
            ),
            filter_fields=("type", "user_id", "subject_type", "subject_id"),
            search_fields=("description",),
            order_by=("due_at", "id"),
        ),
    }

    return Services(
        engine=engine,
        settings=settings,
        sessions=SessionAuth(settings.secret_key, max_age=settings.session_max_age),
        users=DatabaseUserRepository(engine),
        teams=teams,
        roles=roles,
        auditor=auditor,
        gate=PermissionGate(
            roles,
            super_admin_bypass=settings.super_admin_bypasses_gate,
            auditor=auditor,
        ),
        resolver=TenantResolver(
            teams,
            super_admin_bypasses_scoping=settings.super_admin_bypasses_scoping,
        ),
        crm=crm,
        posts=ScopedRepository(
            engine,
            Post,
            scope=AUTHOR_SCOPE,
            dependents=(Dependent(Comment, "post_id", cascade=True),),
            search_fields=("content",),
            order_by=("created_at", "id"),
        ),
        comments=ScopedRepository(
            engine,
            Comment,
            scope=AUTHOR_SCOPE,
            references=(ScopedReference("post_id", Post, scope=AUTHOR_SCOPE),),
            filter_fields=("post_id",),
            order_by=("created_at", "id"),
        ),
        profiles=ScopedRepository(engine, Profile, scope=AUTHOR_SCOPE),
    )


# ---------------------------------------------------------------------------
# Request dependencies
# ---------------------------------------------------------------------------


def get_services(request: Request) -> Services:
    return request.app.state.services  # type: ignore[no-any-return]


async def current_user(
    request: Request,
    services: Services = Depends(get_services),
) -> User:
    """Return the authenticated user or raise ``AuthenticationError``."""
    session = services.sessions.validate_session(request.cookies.get(SESSION_COOKIE))
    if not session:
        msg = "Not authenticated"
        raise AuthenticationError(msg)
    user = await services.users.get_by_id(session.user_id)
    if user is None:
        msg = "User not found or inactive"
        raise AuthenticationError(msg)
    structlog.contextvars.bind_contextvars(user_id=user.id)
    return user


async def get_actor(user: User = Depends(current_user)) -> ActorContext:
    return ActorContext(user_id=user.id, email=user.email)


async def get_tenant(
    request: Request,
    user: User = Depends(current_user),
    services: Services = Depends(get_services),
) -> TenantContext:
    """Resolve the active team from the ``X-Team-ID`` header or ``team`` query param."""
    selector = request.headers.get(TEAM_HEADER) or request.query_params.get("team")
    tenant = await services.resolver.resolve(user, selector)
    if tenant is None:
        msg = "No team membership"
        raise AuthorizationError(msg)
    structlog.contextvars.bind_contextvars(team_id=tenant.team_id)
    return tenant


def require_permission(
    action: str, resource: str
) -> Callable[..., Awaitable[TenantContext]]:
    """Dependency factory: resolve the tenant, then consult the gate."""
    permission = permission_name(action, resource)

    async def dependency(
        tenant: TenantContext = Depends(get_tenant),
        services: Services = Depends(get_services),
    ) -> TenantContext:
        if not await services.gate.allows(tenant, permission):
            msg = f"Missing permission {permission}"
            raise AuthorizationError(msg)
        return tenant

    return dependency


async def ensure_allowed(
    services: Services, tenant: TenantContext, permission: str, target: Any
) -> None:
    """Instance-level gate check used after a scoped load."""
    if not await services.gate.allows(tenant, permission, target):
        msg = f"Missing permission {permission}"
        raise AuthorizationError(msg)


def request_meta(request: Request) -> dict[str, str]:
    """Client details recorded in the audit trail."""
    return {
        "ip_address": request.client.host if request.client else "",
        "request_id": request.headers.get("x-request-id", ""),
    }


async def require_super_admin(user: User = Depends(current_user)) -> User:
    """Allow only super-admins; no team is involved."""
    if not user.is_super_admin:
        logger.warning("super_admin_required", user_id=user.id)
        msg = "Super-admin only"
        raise AuthorizationError(msg)
    return user
