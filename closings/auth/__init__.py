"""Auth package: dependencies, RBAC, identity tokens."""

from closings.auth.dependencies import get_current_user, require_permission
from closings.auth.rbac import authorize, check_permission, get_permissions_for_role

__all__ = [
    "authorize",
    "check_permission",
    "get_current_user",
    "get_permissions_for_role",
    "require_permission",
]
