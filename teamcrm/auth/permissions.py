"""Permission strings and the default role catalogue.

A permission is the exact string ``{action}:{resource}``, e.g. ``create:Company``.
There is no wildcard or prefix matching anywhere.
"""

from __future__ import annotations

ACTIONS: tuple[str, ...] = ("view_any", "view", "create", "update", "delete", "delete_any")

CRM_RESOURCES: tuple[str, ...] = ("Company", "Contact", "Deal", "Activity")
RESOURCES: tuple[str, ...] = (*CRM_RESOURCES, "Team", "Role", "AuditLog")

ADMIN_ROLE = "admin"
USER_ROLE = "user"


def permission_name(action: str, resource: str) -> str:
    """Build a permission string, rejecting unknown parts."""
    if action not in ACTIONS:
        msg = f"Unknown action: {action!r}"
        raise ValueError(msg)
    if resource not in RESOURCES:
        msg = f"Unknown resource: {resource!r}"
        raise ValueError(msg)
    return f"{action}:{resource}"


def is_valid_permission(permission: str) -> bool:
    """Return True if the string is a well-formed, known permission."""
    action, sep, resource = permission.partition(":")
    return bool(sep) and action in ACTIONS and resource in RESOURCES


def all_permissions() -> frozenset[str]:
    return frozenset(f"{a}:{r}" for r in RESOURCES for a in ACTIONS)


def default_roles() -> dict[str, frozenset[str]]:
    """Roles seeded into every new team."""
    user_perms = {
        f"{a}:{r}" for r in CRM_RESOURCES for a in ("view_any", "view", "create", "update")
    }
    user_perms |= {"view_any:Team", "view:Team"}
    return {
        ADMIN_ROLE: all_permissions(),
        USER_ROLE: frozenset(user_perms),
    }
