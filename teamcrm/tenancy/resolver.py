"""Resolve the single active team for a request."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from teamcrm.exceptions import AuthorizationError
from teamcrm.tenancy.context import TenantContext

if TYPE_CHECKING:
    from teamcrm.models.database import Team, User
    from teamcrm.storage.repositories.teams import TeamRepository

logger = structlog.get_logger(__name__)


class TenantResolver:
    """Determine which team is active for an authenticated user.

    Resolution order:

    1. An explicit selector is honored only when the user is a member of
       that team; otherwise ``AuthorizationError``. Unknown team ids fail
       the same way so that existence is not leaked.
    2. The user's remembered ``current_team_id``, if still a member.
    3. The user's personal team.
    4. The earliest remaining membership.

    A user with no memberships resolves to ``None``. Resolution only reads.
    """

    def __init__(
        self, teams: TeamRepository, *, super_admin_bypasses_scoping: bool = False
    ) -> None:
        self._teams = teams
        self._super_admin_bypasses_scoping = super_admin_bypasses_scoping

    async def resolve(self, user: User, selector: str | None = None) -> TenantContext | None:
        memberships = await self._teams.list_for_user(user.id)

        if selector:
            team = next((t for t in memberships if t.id == selector), None)
            if team is not None:
                return self._context(user, team)
            if user.is_super_admin and self._super_admin_bypasses_scoping:
                foreign = await self._teams.get(selector)
                if foreign is not None:
                    logger.warning(
                        "tenant_super_admin_entry",
                        user_id=user.id,
                        team_id=foreign.id,
                    )
                    return self._context(user, foreign, member=False)
            logger.info("tenant_selector_rejected", user_id=user.id, team_id=selector)
            msg = "Not a member of this team"
            raise AuthorizationError(msg)

        if not memberships:
            return None

        by_id = {t.id: t for t in memberships}
        if user.current_team_id and user.current_team_id in by_id:
            return self._context(user, by_id[user.current_team_id])

        personal = next(
            (t for t in memberships if t.personal_team and t.owner_id == user.id), None
        )
        return self._context(user, personal or memberships[0])

    @staticmethod
    def _context(user: User, team: Team, *, member: bool = True) -> TenantContext:
        return TenantContext(
            team_id=team.id,
            user_id=user.id,
            email=user.email,
            personal_team=team.personal_team,
            is_super_admin=user.is_super_admin,
            member=member,
        )
