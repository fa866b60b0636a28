"""Unit tests for the permission gate."""

from __future__ import annotations

from types import SimpleNamespace
from typing import TYPE_CHECKING

import pytest
from sqlmodel.ext.asyncio.session import AsyncSession

from teamcrm.audit.logger import AuditLogger
from teamcrm.auth.gate import PermissionGate
from teamcrm.models.database import TeamMembership
from teamcrm.storage.repositories.roles import RoleRepository
from teamcrm.storage.repositories.teams import TeamRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.mark.unit
class TestPermissionGate:
    async def test_admin_of_personal_team_allowed(
        self, async_engine: AsyncEngine, user_repo, tenant_for
    ) -> None:
        user = await user_repo.create(email="owner@example.com", password="pw-123456")
        gate = PermissionGate(RoleRepository(async_engine))
        assert await gate.allows(tenant_for(user), "delete_any:Deal") is True

    async def test_zero_roles_denies_everything(
        self, async_engine: AsyncEngine, user_repo, tenant_for
    ) -> None:
        owner = await user_repo.create(email="owner@example.com", password="pw-123456")
        bare = await user_repo.create(email="bare@example.com", password="pw-123456")
        async with AsyncSession(async_engine) as session:
            session.add(TeamMembership(team_id=owner.current_team_id, user_id=bare.id))
            await session.commit()

        gate = PermissionGate(RoleRepository(async_engine))
        ctx = tenant_for(bare, owner.current_team_id)
        for permission in ("view_any:Company", "view:Deal", "create:Contact"):
            assert await gate.allows(ctx, permission) is False
        assert await gate.permissions(ctx) == frozenset()

    async def test_user_role_is_exact_match(
        self, async_engine: AsyncEngine, user_repo, tenant_for
    ) -> None:
        owner = await user_repo.create(email="owner@example.com", password="pw-123456")
        member = await user_repo.create(email="member@example.com", password="pw-123456")
        teams = TeamRepository(async_engine)
        team = await teams.create_shared_team(owner.id, "Sales")
        await teams.add_member(team.id, member.id, "user")

        gate = PermissionGate(RoleRepository(async_engine))
        ctx = tenant_for(member, team.id)
        assert await gate.allows(ctx, "update:Deal") is True
        assert await gate.allows(ctx, "delete:Deal") is False
        assert await gate.allows(ctx, "update:deal") is False
        assert await gate.allows(ctx, "update") is False

    async def test_roles_do_not_leak_between_teams(
        self, async_engine: AsyncEngine, user_repo, tenant_for
    ) -> None:
        owner = await user_repo.create(email="owner@example.com", password="pw-123456")
        member = await user_repo.create(email="member@example.com", password="pw-123456")
        teams = TeamRepository(async_engine)
        team = await teams.create_shared_team(owner.id, "Sales")
        await teams.add_member(team.id, member.id, "user")

        gate = PermissionGate(RoleRepository(async_engine))
        # admin in their personal team, plain user in the shared one
        assert await gate.allows(tenant_for(member), "delete:Deal") is True
        assert await gate.allows(tenant_for(member, team.id), "delete:Deal") is False

    async def test_foreign_target_denied(
        self, async_engine: AsyncEngine, user_repo, tenant_for
    ) -> None:
        user = await user_repo.create(email="owner@example.com", password="pw-123456")
        gate = PermissionGate(RoleRepository(async_engine))
        ctx = tenant_for(user)
        own = SimpleNamespace(id=1, team_id=user.current_team_id)
        foreign = SimpleNamespace(id=2, team_id="some-other-team")
        assert await gate.allows(ctx, "update:Deal", own) is True
        assert await gate.allows(ctx, "update:Deal", foreign) is False

    async def test_repeated_denials_are_stable(
        self, async_engine: AsyncEngine, user_repo, tenant_for
    ) -> None:
        owner = await user_repo.create(email="owner@example.com", password="pw-123456")
        stranger = await user_repo.create(email="stranger@example.com", password="pw-123456")
        gate = PermissionGate(RoleRepository(async_engine))
        ctx = tenant_for(stranger, owner.current_team_id)
        results = [await gate.allows(ctx, "view:Company") for _ in range(3)]
        assert results == [False, False, False]


@pytest.mark.unit
class TestSuperAdminBypass:
    async def test_bypass_allows_and_is_audited(
        self, async_engine: AsyncEngine, user_repo, tenant_for
    ) -> None:
        owner = await user_repo.create(email="owner@example.com", password="pw-123456")
        root = await user_repo.create(
            email="root@example.com", password="pw-123456", is_super_admin=True
        )
        auditor = AuditLogger(async_engine)
        gate = PermissionGate(RoleRepository(async_engine), auditor=auditor)
        ctx = tenant_for(root, owner.current_team_id, is_super_admin=True, member=False)

        assert await gate.allows(ctx, "delete:Deal") is True

        entries = await auditor.list_for_team(
            owner.current_team_id, action="gate.super_admin_bypass"
        )
        assert len(entries) == 1
        assert entries[0].user_id == root.id
        assert entries[0].resource_type == "Deal"

    async def test_bypass_disabled(self, async_engine: AsyncEngine, user_repo, tenant_for) -> None:
        owner = await user_repo.create(email="owner@example.com", password="pw-123456")
        root = await user_repo.create(
            email="root@example.com", password="pw-123456", is_super_admin=True
        )
        gate = PermissionGate(RoleRepository(async_engine), super_admin_bypass=False)
        ctx = tenant_for(root, owner.current_team_id, is_super_admin=True, member=False)
        assert await gate.allows(ctx, "view:Deal") is False

    async def test_malformed_permission_denied_even_for_super_admin(
        self, async_engine: AsyncEngine, user_repo, tenant_for
    ) -> None:
        root = await user_repo.create(
            email="root@example.com", password="pw-123456", is_super_admin=True
        )
        gate = PermissionGate(RoleRepository(async_engine))
        assert await gate.allows(tenant_for(root, is_super_admin=True), "*:*") is False
