"""Authentication routes — registration, password login, logout."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request, Response

from teamcrm.auth.session import SESSION_COOKIE
from teamcrm.exceptions import AuthenticationError
from teamcrm.models.api import LoginRequest, RegisterRequest, UserResponse
from teamcrm.models.database import User
from teamcrm.web.dependencies import Services, current_user, get_services, request_meta

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _set_session_cookie(response: Response, services: Services, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=not services.settings.debug,
        samesite="lax",
        max_age=services.sessions.max_age,
    )


@router.post("/register", status_code=201, response_model=UserResponse)
async def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
) -> User:
    """Create a user with a personal team and start a session."""
    user = await services.users.create(email=body.email, password=body.password, name=body.name)
    _set_session_cookie(response, services, services.sessions.create_session(user.id, user.email))
    await services.auditor.log(
        team_id=user.current_team_id or "",
        user_id=user.id,
        action="auth.register",
        resource_type="User",
        resource_id=user.id,
        **request_meta(request),
    )
    return user


@router.post("/login", response_model=UserResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
) -> User:
    user = await services.users.authenticate(body.email, body.password)
    if user is None:
        msg = "Invalid credentials"
        raise AuthenticationError(msg)

    _set_session_cookie(response, services, services.sessions.create_session(user.id, user.email))
    await services.auditor.log(
        team_id=user.current_team_id or "",
        user_id=user.id,
        action="auth.login",
        **request_meta(request),
    )
    logger.info("user_logged_in", user_id=user.id)
    return user


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Destroy the current session."""
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        services.sessions.destroy_session(token)
    response.delete_cookie(SESSION_COOKIE)
    return {"status": "logged_out"}


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(current_user)) -> User:
    return user
