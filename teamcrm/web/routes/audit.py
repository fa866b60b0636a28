"""Audit log query API routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from teamcrm.models.api import AuditLogResponse
from teamcrm.tenancy.context import TenantContext
from teamcrm.web.dependencies import Services, get_services, require_permission

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("", response_model=list[AuditLogResponse])
async def list_audit_logs(
    action: str | None = None,
    resource_type: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    tenant: TenantContext = Depends(require_permission("view_any", "AuditLog")),
    services: Services = Depends(get_services),
) -> list[Any]:
    """Query audit logs for the active team, newest first."""
    return await services.auditor.list_for_team(
        tenant.team_id,
        action=action,
        resource_type=resource_type,
        limit=limit,
        offset=offset,
    )
