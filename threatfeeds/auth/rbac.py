"""Role-based access control for the feed API."""

from fastapi import Depends, HTTPException, status

from ..dependencies import get_current_user
from ..utils.logging import get_logger

logger = get_logger("auth.rbac")

# Permission constants
PERM_VIEW_FEEDS = "view_feeds"
PERM_MANAGE_FEEDS = "manage_feeds"

ALL_PERMISSIONS = [PERM_VIEW_FEEDS, PERM_MANAGE_FEEDS]

DEFAULT_ROLES = {
    "admin": {
        "description": "Full feed administration",
        "permissions": ALL_PERMISSIONS,
    },
    "analyst": {
        "description": "Security analyst: configure and ingest feeds",
        "permissions": [PERM_VIEW_FEEDS, PERM_MANAGE_FEEDS],
    },
    "viewer": {
        "description": "Read-only access to feeds and indicators",
        "permissions": [PERM_VIEW_FEEDS],
    },
}


def get_role_permissions(role: str | None) -> list[str]:
    """Unknown roles get no permissions."""
    role_def = DEFAULT_ROLES.get(role or "")
    return list(role_def["permissions"]) if role_def else []


def require_permission(*required_perms: str):
    """FastAPI dependency factory that checks the caller holds every permission."""

    async def _check(current_user: dict = Depends(get_current_user)) -> dict:
        user_perms = get_role_permissions(current_user.get("role"))
        for perm in required_perms:
            if perm not in user_perms:
                logger.warning(
                    "permission_denied",
                    user=current_user.get("sub"),
                    role=current_user.get("role"),
                    permission=perm,
                )
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Permission required: {perm}",
                )
        current_user["permissions"] = user_perms
        return current_user

    return _check
