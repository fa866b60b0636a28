"""User administration routes, open to super-admins only.

These act across teams, so they take no tenant and go through neither the
resolver nor the team permission gate.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response

from teamcrm.exceptions import AuthorizationError
from teamcrm.models.api import (
    AdminUserCreate,
    AdminUserResponse,
    AdminUserUpdate,
    payload_values,
)
from teamcrm.models.database import User
from teamcrm.web.dependencies import Services, get_services, request_meta, require_super_admin

router = APIRouter(prefix="/api/admin/users", tags=["admin"])


async def _audit(
    services: Services,
    request: Request,
    admin: User,
    action: str,
    user_id: str,
    details: dict[str, object] | None = None,
) -> None:
    await services.auditor.log(
        team_id="",
        user_id=admin.id,
        action=f"admin.user_{action}",
        resource_type="User",
        resource_id=user_id,
        details=details,
        **request_meta(request),
    )


@router.get("", response_model=list[AdminUserResponse])
async def list_users(
    search: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin: User = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> list[User]:
    return await services.users.list_users(search=search, limit=limit, offset=offset)


@router.get("/{user_id}", response_model=AdminUserResponse)
async def get_user(
    user_id: str,
    admin: User = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> User:
    return await services.users.get_any(user_id)


@router.post("", status_code=201, response_model=AdminUserResponse)
async def create_user(
    body: AdminUserCreate,
    request: Request,
    admin: User = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> User:
    """Create a user with a personal team, as registration would."""
    user = await services.users.create(
        email=body.email,
        password=body.password,
        name=body.name,
        is_super_admin=body.is_super_admin,
    )
    await _audit(services, request, admin, "create", user.id, {"super_admin": user.is_super_admin})
    return user


@router.patch("/{user_id}", response_model=AdminUserResponse)
async def update_user(
    user_id: str,
    body: AdminUserUpdate,
    request: Request,
    admin: User = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> User:
    values = payload_values(body, partial=True)
    if user_id == admin.id and (
        values.get("is_super_admin") is False or values.get("is_active") is False
    ):
        msg = "Super-admins cannot demote or deactivate themselves"
        raise AuthorizationError(msg)
    user = await services.users.update_user(user_id, values)
    await _audit(services, request, admin, "update", user_id, {"fields": sorted(values)})
    return user


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: str,
    request: Request,
    admin: User = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> Response:
    if user_id == admin.id:
        msg = "Super-admins cannot delete themselves"
        raise AuthorizationError(msg)
    await services.users.delete_user(user_id)
    await _audit(services, request, admin, "delete", user_id)
    return Response(status_code=204)
