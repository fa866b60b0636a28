"""User repository — registration, lookup, credentials and administration."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from teamcrm.auth.passwords import hash_password, verify_password
from teamcrm.auth.permissions import ADMIN_ROLE
from teamcrm.exceptions import NotFoundError, StorageError
from teamcrm.models.database import (
    Activity,
    Comment,
    Deal,
    Post,
    Profile,
    Team,
    TeamMembership,
    User,
    UserRole,
    _utc_now,
)
from teamcrm.storage.repositories.roles import seed_default_roles
from teamcrm.storage.repositories.teams import purge_team
from teamcrm.tenancy.scoping import escape_like

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

_EDITABLE = frozenset({"name", "password", "is_super_admin", "is_active"})


class DatabaseUserRepository:
    """PostgreSQL-backed user store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create(
        self,
        email: str,
        password: str,
        name: str = "",
        *,
        is_super_admin: bool = False,
    ) -> User:
        """Register a user together with their personal team.

        The user becomes the team's owner and holds its ``admin`` role.
        Everything is written in one transaction.
        """
        email = email.strip().lower()
        display_name = name or email.split("@", 1)[0]
        # PBKDF2 is CPU-bound; keep it off the event loop
        password_hash = await asyncio.to_thread(hash_password, password)

        async with AsyncSession(self._engine) as session:
            user = User(
                email=email,
                name=display_name,
                password_hash=password_hash,
                is_active=True,
                is_super_admin=is_super_admin,
            )
            session.add(user)
            try:
                await session.flush()
            except IntegrityError as exc:
                msg = f"User {email} already exists"
                raise StorageError(msg) from exc

            team = Team(
                owner_id=user.id,
                name=f"{display_name}'s Team",
                personal_team=True,
            )
            session.add(team)
            await session.flush()
            team_id = team.id

            session.add(TeamMembership(team_id=team_id, user_id=user.id))
            roles = await seed_default_roles(session, team_id)
            session.add(UserRole(user_id=user.id, role_id=roles[ADMIN_ROLE].id))

            user.current_team_id = team_id
            session.add(user)
            await session.commit()
            await session.refresh(user)

            logger.info(
                "user_registered",
                user_id=user.id,
                email=email,
                personal_team_id=team_id,
                super_admin=is_super_admin,
            )
            return user

    async def get_by_id(self, user_id: str) -> User | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(User).where(col(User.id) == user_id, col(User.is_active).is_(True))
            result = await session.execute(stmt)
            return result.scalars().first()

    async def get_by_email(self, email: str) -> User | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(User).where(
                col(User.email) == email.strip().lower(), col(User.is_active).is_(True)
            )
            result = await session.execute(stmt)
            return result.scalars().first()

    async def authenticate(self, email: str, password: str) -> User | None:
        """Return the user if the credentials match, else None."""
        user = await self.get_by_email(email)
        if user is None or not await asyncio.to_thread(
            verify_password, password, user.password_hash
        ):
            logger.info("login_rejected", email=email)
            return None
        return user

    async def has_any(self) -> bool:
        """Check if any active users exist."""
        async with AsyncSession(self._engine) as session:
            stmt = select(User).where(col(User.is_active).is_(True)).limit(1)
            result = await session.execute(stmt)
            return result.scalars().first() is not None

    # -- administration -----------------------------------------------------

    async def list_users(
        self, *, search: str | None = None, limit: int = 50, offset: int = 0
    ) -> list[User]:
        """Every user, active or not, optionally matching ``search`` on email or name."""
        stmt = select(User)
        if search:
            pattern = f"%{escape_like(search)}%"
            stmt = stmt.where(
                or_(
                    col(User.email).ilike(pattern, escape="\\"),
                    col(User.name).ilike(pattern, escape="\\"),
                )
            )
        stmt = stmt.order_by(col(User.created_at), col(User.email)).limit(limit).offset(offset)
        async with AsyncSession(self._engine) as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_any(self, user_id: str) -> User:
        """Load a user regardless of the active flag."""
        async with AsyncSession(self._engine) as session:
            user = await session.get(User, user_id)
            if user is None:
                msg = "User not found"
                raise NotFoundError(msg)
            return user

    async def update_user(self, user_id: str, attributes: Mapping[str, Any]) -> User:
        """Apply admin edits; ``password`` is re-hashed before storage."""
        values = {k: v for k, v in attributes.items() if k in _EDITABLE}
        password = values.pop("password", None)
        if password is not None:
            values["password_hash"] = await asyncio.to_thread(hash_password, password)

        async with AsyncSession(self._engine) as session:
            user = await session.get(User, user_id)
            if user is None:
                msg = "User not found"
                raise NotFoundError(msg)
            for name, value in values.items():
                setattr(user, name, value)
            user.updated_at = _utc_now()
            session.add(user)
            await session.commit()
            await session.refresh(user)

        changed = sorted("password" if k == "password_hash" else k for k in values)
        if "is_super_admin" in values:
            logger.warning(
                "super_admin_flag_changed", user_id=user_id, value=values["is_super_admin"]
            )
        logger.info("user_updated", user_id=user_id, fields=changed)
        return user

    async def delete_user(self, user_id: str) -> None:
        """Remove a user with their personal team, social records and memberships.

        Deals and activities in shared teams keep existing with their
        owner/assignee cleared. A user who still owns a shared team cannot
        be deleted.
        """
        async with AsyncSession(self._engine) as session:
            user = await session.get(User, user_id)
            if user is None:
                msg = "User not found"
                raise NotFoundError(msg)

            owned_stmt = select(Team).where(col(Team.owner_id) == user_id)
            owned = list((await session.execute(owned_stmt)).scalars().all())
            if any(not team.personal_team for team in owned):
                msg = "User still owns shared teams"
                raise StorageError(msg)
            for team in owned:
                await purge_team(session, team)

            post_ids = select(Post.id).where(col(Post.user_id) == user_id)
            await session.execute(
                delete(Comment).where(
                    or_(col(Comment.user_id) == user_id, col(Comment.post_id).in_(post_ids))
                )
            )
            await session.execute(delete(Post).where(col(Post.user_id) == user_id))
            await session.execute(delete(Profile).where(col(Profile.user_id) == user_id))

            await session.execute(
                update(Deal).where(col(Deal.owner_id) == user_id).values(owner_id=None)
            )
            await session.execute(
                update(Activity).where(col(Activity.user_id) == user_id).values(user_id=None)
            )
            await session.execute(delete(UserRole).where(col(UserRole.user_id) == user_id))
            await session.execute(
                delete(TeamMembership).where(col(TeamMembership.user_id) == user_id)
            )
            await session.delete(user)
            await session.commit()
            logger.warning("user_deleted", user_id=user_id, personal_teams=len(owned))
