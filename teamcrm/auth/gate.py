"""Role/permission gate: the single allow/deny decision point."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from teamcrm.auth.permissions import is_valid_permission

if TYPE_CHECKING:
    from teamcrm.audit.logger import AuditLogger
    from teamcrm.storage.repositories.roles import RoleRepository
    from teamcrm.tenancy.context import TenantContext

logger = structlog.get_logger(__name__)


class PermissionGate:
    """Decide whether an actor may perform an action within the active team.

    ``allows`` never raises for a deny outcome; callers branch on the
    boolean. Permissions are loaded per call, so there is no state shared
    between requests.

    The super-administrator bypass is an explicit switch. Every use of it
    is logged and written to the audit trail.
    """

    def __init__(
        self,
        roles: RoleRepository,
        *,
        super_admin_bypass: bool = True,
        auditor: AuditLogger | None = None,
    ) -> None:
        self._roles = roles
        self._super_admin_bypass = super_admin_bypass
        self._auditor = auditor

    async def allows(
        self,
        tenant: TenantContext,
        permission: str,
        target: Any | None = None,
    ) -> bool:
        if not is_valid_permission(permission):
            logger.warning("gate_malformed_permission", permission=permission)
            return False

        if tenant.is_super_admin and self._super_admin_bypass:
            await self._record_bypass(tenant, permission, target)
            return True

        if not tenant.member:
            return False

        target_team = getattr(target, "team_id", None)
        if target is not None and target_team is not None and target_team != tenant.team_id:
            logger.info(
                "gate_denied_foreign_target",
                user_id=tenant.user_id,
                team_id=tenant.team_id,
                permission=permission,
            )
            return False

        granted = await self._roles.permissions_for(tenant.user_id, tenant.team_id)
        allowed = permission in granted
        if not allowed:
            logger.info(
                "gate_denied",
                user_id=tenant.user_id,
                team_id=tenant.team_id,
                permission=permission,
            )
        return allowed

    async def permissions(self, tenant: TenantContext) -> frozenset[str]:
        """Effective permissions of the actor in the active team."""
        if not tenant.member:
            return frozenset()
        return await self._roles.permissions_for(tenant.user_id, tenant.team_id)

    async def _record_bypass(
        self, tenant: TenantContext, permission: str, target: Any | None
    ) -> None:
        target_id = str(getattr(target, "id", "") or "")
        logger.warning(
            "gate_super_admin_bypass",
            user_id=tenant.user_id,
            team_id=tenant.team_id,
            permission=permission,
            target_id=target_id,
        )
        if self._auditor is not None:
            await self._auditor.log(
                team_id=tenant.team_id,
                user_id=tenant.user_id,
                action="gate.super_admin_bypass",
                resource_type=permission.partition(":")[2],
                resource_id=target_id,
                details={"permission": permission},
            )
