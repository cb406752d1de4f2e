"""RBAC capability matrix and scope checks.

Every role maps to a set of (action, resource_type) tuples. Which roles may
call which lifecycle mutation is decided here and nowhere else; services call
``authorize`` with the record's owning firm so that firm principals are held
to their own firm.
"""

import uuid

from closings.core.errors import AuthorizationError
from closings.models.enums import UserRole
from closings.schemas.auth import CurrentUser


# ── Actions ───────────────────────────────────────────────────────────────


class Action:
    VIEW = "view"
    CREATE = "create"
    SET_STATUS = "set_status"
    SET_TITLE_STATUS = "set_title_status"
    SCHEDULE = "schedule"
    ASSIGN = "assign"
    ACTIVATE = "activate"
    DISABLE = "disable"
    RECONCILE = "reconcile"


# ── Resource Types ────────────────────────────────────────────────────────


class Resource:
    TRANSACTION = "transaction"
    STAFF = "staff"
    WORKLOAD = "workload"
    HEALTH = "health"
    PIPELINE = "pipeline"


# ── Per-role permission sets ──────────────────────────────────────────────

_CUSTOMER_PERMS: set[tuple[str, str]] = {
    (Action.VIEW, Resource.TRANSACTION),
    (Action.CREATE, Resource.TRANSACTION),
}

_ATTORNEY_PERMS: set[tuple[str, str]] = {
    (Action.VIEW, Resource.TRANSACTION),
    (Action.VIEW, Resource.PIPELINE),
}

_LAW_FIRM_PERMS: set[tuple[str, str]] = {
    (Action.VIEW, Resource.TRANSACTION),
    (Action.SET_STATUS, Resource.TRANSACTION),
    (Action.SET_TITLE_STATUS, Resource.TRANSACTION),
    (Action.SCHEDULE, Resource.TRANSACTION),
    (Action.ASSIGN, Resource.TRANSACTION),
    (Action.VIEW, Resource.STAFF),
    (Action.ACTIVATE, Resource.STAFF),
    (Action.VIEW, Resource.WORKLOAD),
    (Action.RECONCILE, Resource.WORKLOAD),
    (Action.VIEW, Resource.HEALTH),
    (Action.VIEW, Resource.PIPELINE),
}

_ADMIN_PERMS: set[tuple[str, str]] = _CUSTOMER_PERMS | _ATTORNEY_PERMS | _LAW_FIRM_PERMS | {
    (Action.DISABLE, Resource.STAFF),
}

PERMISSION_MATRIX: dict[UserRole, set[tuple[str, str]]] = {
    UserRole.CUSTOMER: _CUSTOMER_PERMS,
    UserRole.ATTORNEY: _ATTORNEY_PERMS,
    UserRole.LAW_FIRM: _LAW_FIRM_PERMS,
    UserRole.ADMIN: _ADMIN_PERMS,
}


# ── Public API ────────────────────────────────────────────────────────────


def check_permission(role: UserRole, action: str, resource_type: str) -> bool:
    """Check if a role has permission for an action on a resource type."""
    perms = PERMISSION_MATRIX.get(role)
    if perms is None:
        return False
    return (action, resource_type) in perms


def get_permissions_for_role(role: UserRole) -> dict[str, list[str]]:
    """Return permissions grouped by resource type (for API responses)."""
    perms = PERMISSION_MATRIX.get(role, set())
    result: dict[str, list[str]] = {}
    for action, resource in sorted(perms):
        result.setdefault(resource, []).append(action)
    return result


def owns_firm(actor: CurrentUser, law_firm_id: uuid.UUID | None) -> bool:
    """Admins act on every firm; everyone else only on the firm in their token."""
    if actor.role == UserRole.ADMIN:
        return True
    return law_firm_id is not None and actor.law_firm_id == law_firm_id


def authorize(
    actor: CurrentUser,
    action: str,
    resource_type: str,
    law_firm_id: uuid.UUID | None = None,
) -> None:
    """Raise AuthorizationError unless the actor may perform the action.

    When ``law_firm_id`` is given, firm-scoped roles must also belong to that
    firm.
    """
    if not check_permission(actor.role, action, resource_type):
        raise AuthorizationError(
            f"Role '{actor.role.value}' may not {action} {resource_type}",
            detail={"role": actor.role.value, "action": action, "resource": resource_type},
        )
    if law_firm_id is not None and actor.role in (UserRole.LAW_FIRM, UserRole.ATTORNEY):
        if not owns_firm(actor, law_firm_id):
            raise AuthorizationError(
                f"Not permitted to {action} {resource_type} of another law firm",
                detail={"law_firm_id": str(law_firm_id)},
            )
