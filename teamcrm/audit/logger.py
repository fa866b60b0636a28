"""Audit logger — immutable, insert-only audit trail.

Uses its own DB session so audit entries survive rollbacks of the calling
operation. Details JSON is sanitized (sensitive fields stripped, 10KB max).
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import structlog
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from teamcrm.models.database import AuditLog

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

_SENSITIVE_FIELDS = frozenset(
    {
        "password",
        "password_hash",
        "secret",
        "token",
        "api_key",
        "secret_key",
        "authorization",
        "cookie",
        "session",
    }
)

_MAX_DETAILS_BYTES = 10_240  # 10KB


def _sanitize_details(details: dict[str, Any]) -> str:
    """Strip sensitive fields and enforce size limit."""
    sanitized = {k: v for k, v in details.items() if k.lower() not in _SENSITIVE_FIELDS}
    encoded = json.dumps(sanitized, default=str)
    if len(encoded.encode()) > _MAX_DETAILS_BYTES:
        # never store a cut JSON document
        return json.dumps({"truncated": True, "size": len(encoded.encode())})
    return encoded


class AuditLogger:
    """Insert-only audit logger with its own DB session."""

    def __init__(self, engine: AsyncEngine, enabled: bool = True) -> None:
        self._engine = engine
        self._enabled = enabled

    async def log(
        self,
        *,
        team_id: str,
        user_id: str,
        action: str,
        resource_type: str = "",
        resource_id: str = "",
        details: dict[str, Any] | None = None,
        ip_address: str = "",
        request_id: str = "",
    ) -> None:
        """Write an audit log entry."""
        if not self._enabled:
            return

        entry = AuditLog(
            team_id=team_id,
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details_json=_sanitize_details(details or {}),
            ip_address=ip_address,
            request_id=request_id,
        )
        try:
            async with AsyncSession(self._engine) as session:
                session.add(entry)
                await session.commit()
        except Exception:
            # audit failures are logged, never raised to the caller
            logger.exception("audit_log_failed", action=action, team_id=team_id)

    async def list_for_team(
        self,
        team_id: str,
        *,
        action: str | None = None,
        resource_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditLog]:
        """Query audit entries for one team, newest first."""
        stmt = select(AuditLog).where(col(AuditLog.team_id) == team_id)
        if action:
            stmt = stmt.where(col(AuditLog.action) == action)
        if resource_type:
            stmt = stmt.where(col(AuditLog.resource_type) == resource_type)
        stmt = stmt.order_by(col(AuditLog.created_at).desc()).limit(limit).offset(offset)
        async with AsyncSession(self._engine) as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
