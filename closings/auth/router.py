"""Auth API router: the caller's permission matrix."""

from fastapi import APIRouter, Depends

from closings.auth.dependencies import get_current_user
from closings.auth.rbac import get_permissions_for_role
from closings.schemas.auth import CurrentUser, PermissionMatrixResponse

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/permissions", response_model=PermissionMatrixResponse)
async def get_permissions(
    current_user: CurrentUser = Depends(get_current_user),
):
    """Return the current user's permission matrix."""
    return PermissionMatrixResponse(
        role=current_user.role,
        permissions=get_permissions_for_role(current_user.role),
    )
