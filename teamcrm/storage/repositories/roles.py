"""Role and permission repository — team-scoped RBAC data."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from teamcrm.auth.permissions import default_roles, is_valid_permission
from teamcrm.exceptions import InvalidRecordError, StorageError
from teamcrm.models.database import Role, RolePermission, UserRole

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


async def seed_default_roles(session: AsyncSession, team_id: str) -> dict[str, Role]:
    """Add the default roles to a team inside the caller's transaction."""
    created: dict[str, Role] = {}
    for name, permissions in default_roles().items():
        role = Role(team_id=team_id, name=name)
        session.add(role)
        await session.flush()
        for permission in sorted(permissions):
            session.add(RolePermission(role_id=role.id, permission=permission))
        created[name] = role
    return created


class RoleRepository:
    """PostgreSQL-backed role store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create_role(self, team_id: str, name: str, permissions: Iterable[str]) -> Role:
        perms = set(permissions)
        invalid = sorted(p for p in perms if not is_valid_permission(p))
        if invalid:
            msg = f"Invalid permissions: {', '.join(invalid)}"
            raise InvalidRecordError(msg)

        async with AsyncSession(self._engine) as session:
            role = Role(team_id=team_id, name=name)
            session.add(role)
            try:
                await session.flush()
            except IntegrityError as exc:
                msg = f"Role {name!r} already exists"
                raise StorageError(msg) from exc
            for permission in sorted(perms):
                session.add(RolePermission(role_id=role.id, permission=permission))
            await session.commit()
            await session.refresh(role)
            logger.info("role_created", team_id=team_id, role=name, permissions=len(perms))
            return role

    async def list_for_team(self, team_id: str) -> list[tuple[Role, list[str]]]:
        """Roles of a team with their permission strings, by name."""
        async with AsyncSession(self._engine) as session:
            stmt = select(Role).where(col(Role.team_id) == team_id).order_by(col(Role.name))
            roles = list((await session.execute(stmt)).scalars().all())
            perm_stmt = select(RolePermission.role_id, RolePermission.permission).where(
                col(RolePermission.role_id).in_([r.id for r in roles])
            )
            grouped: dict[str, list[str]] = {r.id: [] for r in roles}
            for role_id, permission in (await session.execute(perm_stmt)).all():
                grouped[role_id].append(permission)
            return [(r, sorted(grouped[r.id])) for r in roles]

    async def role_names_for(self, user_id: str, team_id: str) -> list[str]:
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(Role.name)
                .join(UserRole, col(UserRole.role_id) == col(Role.id))
                .where(col(UserRole.user_id) == user_id, col(Role.team_id) == team_id)
                .order_by(col(Role.name))
            )
            result = await session.execute(stmt)
            return [name for (name,) in result.all()]

    async def permissions_for(self, user_id: str, team_id: str) -> frozenset[str]:
        """Union of permissions across every role the user holds in the team."""
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(RolePermission.permission)
                .join(Role, col(Role.id) == col(RolePermission.role_id))
                .join(UserRole, col(UserRole.role_id) == col(Role.id))
                .where(col(UserRole.user_id) == user_id, col(Role.team_id) == team_id)
            )
            result = await session.execute(stmt)
            return frozenset(p for (p,) in result.all())
