"""Static operation -> permission table and the explicit pre-check."""

from app.core.exceptions import ACCESS_DENIED_MESSAGE, PermissionDeniedError
from app.schemas.auth import Principal

# Granted to the superuser; satisfies every check.
ALL_PERMISSION = "*:*:*"

USER_PERMISSIONS: dict[str, str] = {
    "list": "system:user:list",
    "query": "system:user:query",
    "add": "system:user:add",
    "edit": "system:user:edit",
    "remove": "system:user:remove",
    "reset_password": "system:user:resetPwd",
    "change_status": "system:user:edit",
    "assign_roles": "system:user:edit",
}


def has_permission(principal: Principal, operation: str) -> bool:
    """True if the principal holds the permission mapped to operation."""
    required = USER_PERMISSIONS[operation]
    return ALL_PERMISSION in principal.permissions or required in principal.permissions


def ensure_permission(principal: Principal, operation: str) -> None:
    """Raise PermissionDeniedError unless the principal may run operation."""
    if not has_permission(principal, operation):
        raise PermissionDeniedError(ACCESS_DENIED_MESSAGE)
