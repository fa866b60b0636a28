"""Unit tests for active-team resolution."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import delete
from sqlmodel.ext.asyncio.session import AsyncSession

from teamcrm.exceptions import AuthorizationError
from teamcrm.models.database import TeamMembership
from teamcrm.storage.repositories.teams import TeamRepository
from teamcrm.tenancy.resolver import TenantResolver

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.mark.unit
class TestTenantResolver:
    async def test_falls_back_to_personal_team(self, async_engine: AsyncEngine, user_repo) -> None:
        user = await user_repo.create(email="a@example.com", password="pw-123456")
        teams = TeamRepository(async_engine)
        await teams.create_shared_team(user.id, "Sales")
        user.current_team_id = None

        ctx = await TenantResolver(teams).resolve(user)
        assert ctx is not None
        assert ctx.personal_team is True
        assert ctx.user_id == user.id
        assert ctx.member is True

    async def test_remembered_team_wins(self, async_engine: AsyncEngine, user_repo) -> None:
        user = await user_repo.create(email="a@example.com", password="pw-123456")
        teams = TeamRepository(async_engine)
        shared = await teams.create_shared_team(user.id, "Sales")
        await teams.switch_team(user.id, shared.id)
        user = await user_repo.get_by_id(user.id)

        ctx = await TenantResolver(teams).resolve(user)
        assert ctx is not None
        assert ctx.team_id == shared.id

    async def test_explicit_member_selector(self, async_engine: AsyncEngine, user_repo) -> None:
        user = await user_repo.create(email="a@example.com", password="pw-123456")
        teams = TeamRepository(async_engine)
        shared = await teams.create_shared_team(user.id, "Sales")

        ctx = await TenantResolver(teams).resolve(user, shared.id)
        assert ctx is not None
        assert ctx.team_id == shared.id
        assert ctx.personal_team is False

    async def test_non_member_selector_rejected(self, async_engine: AsyncEngine, user_repo) -> None:
        alice = await user_repo.create(email="alice@example.com", password="pw-123456")
        bob = await user_repo.create(email="bob@example.com", password="pw-123456")
        resolver = TenantResolver(TeamRepository(async_engine))

        with pytest.raises(AuthorizationError):
            await resolver.resolve(alice, bob.current_team_id)
        with pytest.raises(AuthorizationError):
            await resolver.resolve(alice, "no-such-team")

    async def test_no_memberships_resolves_to_none(
        self, async_engine: AsyncEngine, user_repo
    ) -> None:
        user = await user_repo.create(email="a@example.com", password="pw-123456")
        async with AsyncSession(async_engine) as session:
            await session.execute(delete(TeamMembership).where(TeamMembership.user_id == user.id))
            await session.commit()

        assert await TenantResolver(TeamRepository(async_engine)).resolve(user) is None

    async def test_super_admin_scoping_bypass(self, async_engine: AsyncEngine, user_repo) -> None:
        owner = await user_repo.create(email="owner@example.com", password="pw-123456")
        root = await user_repo.create(
            email="root@example.com", password="pw-123456", is_super_admin=True
        )
        teams = TeamRepository(async_engine)

        with pytest.raises(AuthorizationError):
            await TenantResolver(teams).resolve(root, owner.current_team_id)

        ctx = await TenantResolver(teams, super_admin_bypasses_scoping=True).resolve(
            root, owner.current_team_id
        )
        assert ctx is not None
        assert ctx.team_id == owner.current_team_id
        assert ctx.member is False
        assert ctx.is_super_admin is True
