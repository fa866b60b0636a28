"""Team routes — membership listing, shared teams, switching, members, roles."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, Response

from teamcrm.exceptions import AuthorizationError, NotFoundError
from teamcrm.models.api import (
    MemberAdd,
    MemberResponse,
    PermissionsResponse,
    RoleCreate,
    RoleResponse,
    TeamCreate,
    TeamResponse,
)
from teamcrm.models.database import Team, User
from teamcrm.tenancy.context import TenantContext
from teamcrm.web.dependencies import (
    Services,
    current_user,
    get_services,
    get_tenant,
    request_meta,
    require_permission,
)

router = APIRouter(prefix="/api/teams", tags=["teams"])


@router.get("", response_model=list[TeamResponse])
async def list_teams(
    user: User = Depends(current_user),
    services: Services = Depends(get_services),
) -> list[Team]:
    """Teams the current user belongs to."""
    return await services.teams.list_for_user(user.id)


@router.post("", status_code=201, response_model=TeamResponse)
async def create_team(
    body: TeamCreate,
    request: Request,
    user: User = Depends(current_user),
    services: Services = Depends(get_services),
) -> Team:
    team = await services.teams.create_shared_team(user.id, body.name)
    await services.auditor.log(
        team_id=team.id,
        user_id=user.id,
        action="team.create",
        resource_type="Team",
        resource_id=team.id,
        **request_meta(request),
    )
    return team


@router.get("/current", response_model=TeamResponse)
async def current_team(
    tenant: TenantContext = Depends(get_tenant),
    services: Services = Depends(get_services),
) -> Team:
    team = await services.teams.get(tenant.team_id)
    if team is None:
        msg = "Team not found"
        raise NotFoundError(msg)
    return team


@router.get("/current/permissions", response_model=PermissionsResponse)
async def current_permissions(
    tenant: TenantContext = Depends(get_tenant),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Roles and effective permissions of the caller in the active team."""
    roles = await services.roles.role_names_for(tenant.user_id, tenant.team_id)
    permissions = await services.gate.permissions(tenant)
    return {
        "team_id": tenant.team_id,
        "roles": roles,
        "permissions": sorted(permissions),
        "super_admin": tenant.is_super_admin,
    }


@router.get("/current/roles", response_model=list[RoleResponse])
async def list_roles(
    tenant: TenantContext = Depends(require_permission("view_any", "Role")),
    services: Services = Depends(get_services),
) -> list[dict[str, Any]]:
    roles = await services.roles.list_for_team(tenant.team_id)
    return [{"id": role.id, "name": role.name, "permissions": perms} for role, perms in roles]


@router.post("/current/roles", status_code=201, response_model=RoleResponse)
async def create_role(
    body: RoleCreate,
    request: Request,
    tenant: TenantContext = Depends(require_permission("create", "Role")),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Add a custom role to the active team."""
    role = await services.roles.create_role(tenant.team_id, body.name, body.permissions)
    await services.auditor.log(
        team_id=tenant.team_id,
        user_id=tenant.user_id,
        action="role.create",
        resource_type="Role",
        resource_id=role.id,
        details={"permissions": sorted(set(body.permissions))},
        **request_meta(request),
    )
    return {"id": role.id, "name": role.name, "permissions": sorted(set(body.permissions))}


@router.post("/{team_id}/switch", response_model=TeamResponse)
async def switch_team(
    team_id: str,
    user: User = Depends(current_user),
    services: Services = Depends(get_services),
) -> Team:
    """Remember ``team_id`` as the default active team for later requests."""
    await services.teams.switch_team(user.id, team_id)
    team = await services.teams.get(team_id)
    if team is None:
        msg = "Team not found"
        raise NotFoundError(msg)
    return team


@router.get("/current/members", response_model=list[MemberResponse])
async def list_members(
    tenant: TenantContext = Depends(require_permission("view", "Team")),
    services: Services = Depends(get_services),
) -> list[User]:
    return await services.teams.list_members(tenant.team_id)


@router.post("/current/members", status_code=204)
async def add_member(
    body: MemberAdd,
    request: Request,
    tenant: TenantContext = Depends(require_permission("update", "Team")),
    services: Services = Depends(get_services),
) -> Response:
    member = await services.users.get_by_email(body.email)
    if member is None:
        msg = "User not found"
        raise NotFoundError(msg)
    await services.teams.add_member(tenant.team_id, member.id, body.role)
    await services.auditor.log(
        team_id=tenant.team_id,
        user_id=tenant.user_id,
        action="team.member_add",
        resource_type="User",
        resource_id=member.id,
        details={"role": body.role},
        **request_meta(request),
    )
    return Response(status_code=204)


@router.delete("/current/members/{user_id}", status_code=204)
async def remove_member(
    user_id: str,
    request: Request,
    tenant: TenantContext = Depends(require_permission("update", "Team")),
    services: Services = Depends(get_services),
) -> Response:
    if not await services.teams.is_member(tenant.team_id, user_id):
        msg = "User not found"
        raise NotFoundError(msg)
    await services.teams.remove_member(tenant.team_id, user_id)
    await services.auditor.log(
        team_id=tenant.team_id,
        user_id=tenant.user_id,
        action="team.member_remove",
        resource_type="User",
        resource_id=user_id,
        **request_meta(request),
    )
    return Response(status_code=204)


@router.delete("/current", status_code=204)
async def delete_team(
    request: Request,
    tenant: TenantContext = Depends(require_permission("delete", "Team")),
    services: Services = Depends(get_services),
) -> Response:
    """Delete the active team and everything it owns (owner only, shared teams only)."""
    team = await services.teams.get(tenant.team_id)
    if team is None:
        msg = "Team not found"
        raise NotFoundError(msg)
    if team.personal_team:
        msg = "Personal teams cannot be deleted"
        raise AuthorizationError(msg)
    if team.owner_id != tenant.user_id and not tenant.is_super_admin:
        msg = "Only the team owner can delete the team"
        raise AuthorizationError(msg)

    await services.teams.delete_team(team.id)
    await services.auditor.log(
        team_id=team.id,
        user_id=tenant.user_id,
        action="team.delete",
        resource_type="Team",
        resource_id=team.id,
        **request_meta(request),
    )
    return Response(status_code=204)
