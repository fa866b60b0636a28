"""Team repository — teams, memberships and cascading deletion."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete, update
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from teamcrm.auth.permissions import ADMIN_ROLE, USER_ROLE
from teamcrm.exceptions import AuthorizationError, NotFoundError
from teamcrm.models.database import (
    Activity,
    Company,
    Contact,
    Deal,
    Role,
    RolePermission,
    Team,
    TeamMembership,
    User,
    UserRole,
    _utc_now,
)
from teamcrm.storage.repositories.roles import seed_default_roles

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

# Children first so foreign keys never dangle mid-transaction
_TEAM_OWNED = (Activity, Deal, Contact, Company)


async def purge_team(session: AsyncSession, team: Team) -> None:
    """Delete ``team`` and everything it owns inside the caller's transaction."""
    team_id = team.id
    for model in _TEAM_OWNED:
        await session.execute(delete(model).where(col(model.team_id) == team_id))

    role_ids = select(Role.id).where(col(Role.team_id) == team_id)
    await session.execute(delete(RolePermission).where(col(RolePermission.role_id).in_(role_ids)))
    await session.execute(delete(UserRole).where(col(UserRole.role_id).in_(role_ids)))
    await session.execute(delete(Role).where(col(Role.team_id) == team_id))
    await session.execute(delete(TeamMembership).where(col(TeamMembership.team_id) == team_id))
    await session.execute(
        update(User).where(col(User.current_team_id) == team_id).values(current_team_id=None)
    )
    await session.delete(team)


class TeamRepository:
    """PostgreSQL-backed team store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create_shared_team(self, owner_id: str, name: str) -> Team:
        """Create a shared team; the creator becomes a member with the admin role."""
        async with AsyncSession(self._engine) as session:
            team = Team(owner_id=owner_id, name=name, personal_team=False)
            session.add(team)
            await session.flush()
            session.add(TeamMembership(team_id=team.id, user_id=owner_id))
            roles = await seed_default_roles(session, team.id)
            session.add(UserRole(user_id=owner_id, role_id=roles[ADMIN_ROLE].id))
            await session.commit()
            await session.refresh(team)
            logger.info("team_created", team_id=team.id, owner_id=owner_id)
            return team

    async def get(self, team_id: str) -> Team | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(Team, team_id)

    async def is_member(self, team_id: str, user_id: str) -> bool:
        async with AsyncSession(self._engine) as session:
            stmt = select(TeamMembership.id).where(
                col(TeamMembership.team_id) == team_id,
                col(TeamMembership.user_id) == user_id,
            )
            result = await session.execute(stmt)
            return result.first() is not None

    async def list_for_user(self, user_id: str) -> list[Team]:
        """Teams the user belongs to, oldest membership first."""
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(Team)
                .join(TeamMembership, col(TeamMembership.team_id) == col(Team.id))
                .where(col(TeamMembership.user_id) == user_id)
                .order_by(col(TeamMembership.created_at), col(Team.id))
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_members(self, team_id: str) -> list[User]:
        """Users belonging to the team, in the order they joined."""
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(User)
                .join(TeamMembership, col(TeamMembership.user_id) == col(User.id))
                .where(col(TeamMembership.team_id) == team_id)
                .order_by(col(TeamMembership.created_at), col(User.email))
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def add_member(self, team_id: str, user_id: str, role_name: str = USER_ROLE) -> None:
        """Add a user to a team and grant a role there (idempotent)."""
        async with AsyncSession(self._engine) as session:
            role_stmt = select(Role).where(
                col(Role.team_id) == team_id, col(Role.name) == role_name
            )
            role = (await session.execute(role_stmt)).scalars().first()
            if role is None:
                msg = f"Role {role_name!r} not found"
                raise NotFoundError(msg)

            mem_stmt = select(TeamMembership).where(
                col(TeamMembership.team_id) == team_id,
                col(TeamMembership.user_id) == user_id,
            )
            if (await session.execute(mem_stmt)).scalars().first() is None:
                session.add(TeamMembership(team_id=team_id, user_id=user_id))

            ur_stmt = select(UserRole).where(
                col(UserRole.user_id) == user_id, col(UserRole.role_id) == role.id
            )
            if (await session.execute(ur_stmt)).scalars().first() is None:
                session.add(UserRole(user_id=user_id, role_id=role.id))

            await session.commit()
            logger.info("team_member_added", team_id=team_id, user_id=user_id, role=role_name)

    async def remove_member(self, team_id: str, user_id: str) -> None:
        """Drop a membership together with every role held in that team."""
        team = await self.get(team_id)
        if team is None:
            msg = "Team not found"
            raise NotFoundError(msg)
        if team.owner_id == user_id:
            msg = "The team owner cannot be removed"
            raise AuthorizationError(msg)

        async with AsyncSession(self._engine) as session:
            role_ids = select(Role.id).where(col(Role.team_id) == team_id)
            await session.execute(
                delete(UserRole).where(
                    col(UserRole.user_id) == user_id, col(UserRole.role_id).in_(role_ids)
                )
            )
            await session.execute(
                delete(TeamMembership).where(
                    col(TeamMembership.team_id) == team_id,
                    col(TeamMembership.user_id) == user_id,
                )
            )
            await session.execute(
                update(User)
                .where(col(User.id) == user_id, col(User.current_team_id) == team_id)
                .values(current_team_id=None)
            )
            await session.commit()
            logger.info("team_member_removed", team_id=team_id, user_id=user_id)

    async def switch_team(self, user_id: str, team_id: str) -> None:
        """Remember the team a user works in by default."""
        if not await self.is_member(team_id, user_id):
            msg = "Not a member of this team"
            raise AuthorizationError(msg)
        async with AsyncSession(self._engine) as session:
            await session.execute(
                update(User)
                .where(col(User.id) == user_id)
                .values(current_team_id=team_id, updated_at=_utc_now())
            )
            await session.commit()
            logger.info("team_switched", user_id=user_id, team_id=team_id)

    async def delete_team(self, team_id: str) -> bool:
        """Delete a team and everything it owns in a single transaction."""
        async with AsyncSession(self._engine) as session:
            team = await session.get(Team, team_id)
            if team is None:
                return False
            await purge_team(session, team)
            await session.commit()
            logger.info("team_deleted", team_id=team_id)
            return True
