"""FastAPI auth dependencies: get_current_user, require_permission."""

import sentry_sdk
import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from closings.auth.rbac import check_permission
from closings.core.config import settings
from closings.schemas.auth import CurrentUser

logger = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=True)


def decode_identity_token(token: str) -> CurrentUser:
    """Decode an HS256 identity token into a CurrentUser.

    Claims: ``sub`` (user id), ``role``, and optionally ``law_firm_id`` and
    ``staff_id``. Raises JWTError or ValidationError on a bad token.
    """
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    return CurrentUser(
        user_id=payload.get("sub"),
        role=payload.get("role"),
        law_firm_id=payload.get("law_firm_id"),
        staff_id=payload.get("staff_id"),
    )


def encode_identity_token(user: CurrentUser) -> str:
    """Issue a token for a CurrentUser. Used by local tooling and tests."""
    claims: dict[str, str] = {"sub": str(user.user_id), "role": user.role.value}
    if user.law_firm_id:
        claims["law_firm_id"] = str(user.law_firm_id)
    if user.staff_id:
        claims["staff_id"] = str(user.staff_id)
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> CurrentUser:
    """Verify the bearer token and return the caller's identity context."""
    try:
        current_user = decode_identity_token(credentials.credentials)
    except (JWTError, ValidationError) as e:
        logger.warning("jwt_verification_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    request.state.law_firm_id = current_user.law_firm_id
    request.state.user_id = current_user.user_id

    # Enrich Sentry scope with identity (PII-free)
    sentry_sdk.set_user({"id": str(current_user.user_id)})
    sentry_sdk.set_tag("user_role", current_user.role.value)
    if current_user.law_firm_id:
        sentry_sdk.set_tag("law_firm_id", str(current_user.law_firm_id))

    return current_user


def require_permission(action: str, resource_type: str):
    """
    Dependency factory: checks a specific (action, resource_type) permission.

    Usage:
        @router.put("/{id}/status", dependencies=[Depends(require_permission("set_status", "transaction"))])
    """

    async def _check_perm(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if not check_permission(current_user.role, action, resource_type):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {action} on {resource_type}",
            )
        return current_user

    return _check_perm
