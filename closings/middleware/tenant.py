"""Multi-tenant middleware and query helpers.

The middleware initializes request.state.law_firm_id. The actual value is set
by the get_current_user dependency. The scope_to_actor() helper narrows a
transaction query to what the caller's role may see.
"""

import uuid

from sqlalchemy import false
from sqlalchemy.sql import Select
from starlette.types import ASGIApp, Receive, Scope, Send

from closings.models.enums import UserRole
from closings.schemas.auth import CurrentUser


class TenantMiddleware:
    """Pure ASGI middleware that initializes tenant state on each request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            scope.setdefault("state", {})
            scope["state"].setdefault("law_firm_id", None)
            scope["state"].setdefault("user_id", None)
        await self.app(scope, receive, send)


def tenant_filter(stmt: Select, law_firm_id: uuid.UUID, model: type) -> Select:
    """Append a law_firm_id filter to a SQLAlchemy select statement.

    Usage:
        stmt = select(Staff)
        stmt = tenant_filter(stmt, current_user.law_firm_id, Staff)
    """
    if hasattr(model, "law_firm_id"):
        return stmt.where(model.law_firm_id == law_firm_id)  # type: ignore[attr-defined]
    return stmt


def scope_to_actor(stmt: Select, actor: CurrentUser, model: type) -> Select:
    """Restrict a transaction query to the rows the actor's role may read.

    admin: everything. law_firm: own firm. attorney: assigned to them.
    customer: their own orders. Anything else sees nothing.
    """
    if actor.role == UserRole.ADMIN:
        return stmt
    if actor.role == UserRole.LAW_FIRM and actor.law_firm_id:
        return tenant_filter(stmt, actor.law_firm_id, model)
    if actor.role == UserRole.ATTORNEY and actor.staff_id:
        return stmt.where(model.assigned_attorney_id == actor.staff_id)  # type: ignore[attr-defined]
    if actor.role == UserRole.CUSTOMER:
        return stmt.where(model.customer_id == actor.user_id)  # type: ignore[attr-defined]
    return stmt.where(false())
