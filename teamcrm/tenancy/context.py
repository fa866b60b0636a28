"""Tenant context for multi-tenant request scoping."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TenantContext:
    """Immutable tenant context carried through each request."""

    team_id: str
    user_id: str
    email: str
    personal_team: bool = False
    is_super_admin: bool = False
    member: bool = True  # False only when a super-admin entered a foreign team


@dataclass(frozen=True, slots=True)
class ActorContext:
    """Identity-only context for author-owned records that need no team."""

    user_id: str
    email: str
