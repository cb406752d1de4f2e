"""Auth schemas: CurrentUser and permission listing."""

import uuid

from pydantic import BaseModel

from closings.models.enums import UserRole


class CurrentUser(BaseModel):
    """Identity context decoded from the auth provider's token."""

    user_id: uuid.UUID
    role: UserRole
    # Firm the user principals (law_firm) or works for (attorney)
    law_firm_id: uuid.UUID | None = None
    # Staff record of an attorney user
    staff_id: uuid.UUID | None = None


class PermissionMatrixResponse(BaseModel):
    role: UserRole
    permissions: dict[str, list[str]]  # resource_type -> actions
