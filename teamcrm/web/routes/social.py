"""Author-owned social routes: posts, comments and the caller's profile.

These records belong to a user rather than a team, so they are scoped by
author and need no active team.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Response

from teamcrm.exceptions import NotFoundError
from teamcrm.models.api import (
    CommentCreate,
    CommentResponse,
    CommentUpdate,
    PostCreate,
    PostResponse,
    PostUpdate,
    ProfileResponse,
    ProfileUpsert,
    payload_values,
)
from teamcrm.tenancy.context import ActorContext
from teamcrm.web.dependencies import Services, get_actor, get_services

router = APIRouter(prefix="/api", tags=["social"])


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


@router.get("/posts", response_model=list[PostResponse])
async def list_posts(
    search: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: ActorContext = Depends(get_actor),
    services: Services = Depends(get_services),
) -> list[Any]:
    return await services.posts.list(actor, search=search, limit=limit, offset=offset)


@router.post("/posts", status_code=201, response_model=PostResponse)
async def create_post(
    body: PostCreate,
    actor: ActorContext = Depends(get_actor),
    services: Services = Depends(get_services),
) -> Any:
    return await services.posts.create(actor, payload_values(body))


@router.get("/posts/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: int,
    actor: ActorContext = Depends(get_actor),
    services: Services = Depends(get_services),
) -> Any:
    return await services.posts.get(actor, post_id)


@router.patch("/posts/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: int,
    body: PostUpdate,
    actor: ActorContext = Depends(get_actor),
    services: Services = Depends(get_services),
) -> Any:
    return await services.posts.update(actor, post_id, payload_values(body, partial=True))


@router.delete("/posts/{post_id}", status_code=204)
async def delete_post(
    post_id: int,
    actor: ActorContext = Depends(get_actor),
    services: Services = Depends(get_services),
) -> Response:
    await services.posts.delete(actor, post_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


@router.get("/comments", response_model=list[CommentResponse])
async def list_comments(
    post_id: int | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: ActorContext = Depends(get_actor),
    services: Services = Depends(get_services),
) -> list[Any]:
    return await services.comments.list(
        actor, filters={"post_id": post_id}, limit=limit, offset=offset
    )


@router.post("/comments", status_code=201, response_model=CommentResponse)
async def create_comment(
    body: CommentCreate,
    actor: ActorContext = Depends(get_actor),
    services: Services = Depends(get_services),
) -> Any:
    return await services.comments.create(actor, payload_values(body))


@router.patch("/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: int,
    body: CommentUpdate,
    actor: ActorContext = Depends(get_actor),
    services: Services = Depends(get_services),
) -> Any:
    return await services.comments.update(actor, comment_id, payload_values(body, partial=True))


@router.delete("/comments/{comment_id}", status_code=204)
async def delete_comment(
    comment_id: int,
    actor: ActorContext = Depends(get_actor),
    services: Services = Depends(get_services),
) -> Response:
    await services.comments.delete(actor, comment_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Profile (one per user)
# ---------------------------------------------------------------------------


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    actor: ActorContext = Depends(get_actor),
    services: Services = Depends(get_services),
) -> Any:
    profiles = await services.profiles.list(actor, limit=1)
    if not profiles:
        msg = "Profile not found"
        raise NotFoundError(msg)
    return profiles[0]


@router.put("/profile", response_model=ProfileResponse)
async def upsert_profile(
    body: ProfileUpsert,
    actor: ActorContext = Depends(get_actor),
    services: Services = Depends(get_services),
) -> Any:
    """Create the caller's profile or replace the given fields."""
    repo = services.profiles
    existing = await repo.list(actor, limit=1)
    if existing:
        return await repo.update(actor, existing[0].id, payload_values(body, partial=True))
    return await repo.create(actor, payload_values(body))


@router.delete("/profile", status_code=204)
async def delete_profile(
    actor: ActorContext = Depends(get_actor),
    services: Services = Depends(get_services),
) -> Response:
    repo = services.profiles
    existing = await repo.list(actor, limit=1)
    if not existing:
        msg = "Profile not found"
        raise NotFoundError(msg)
    await repo.delete(actor, existing[0].id)
    return Response(status_code=204)
