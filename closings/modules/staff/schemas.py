"""Staff & workload: Pydantic v2 schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from closings.models.enums import StaffRole


class StaffResponse(BaseModel):
    id: uuid.UUID
    law_firm_id: uuid.UUID
    full_name: str
    email: str | None = None
    title: str | None = None
    staff_role: StaffRole
    is_active: bool
    is_disabled: bool
    disabled_at: datetime | None = None
    disabled_reason: str | None = None
    can_be_assigned: bool
    max_assignments: int | None = None
    current_assignments: int
    created_at: datetime

    model_config = {"from_attributes": True}


class StaffDisabledUpdate(BaseModel):
    is_disabled: bool
    reason: str | None = Field(default=None, max_length=1000)


class StaffActiveUpdate(BaseModel):
    is_active: bool


class WorkloadEntry(BaseModel):
    staff_id: uuid.UUID
    full_name: str
    current_assignments: int
    max_assignments: int | None = None
    over_capacity: bool
    is_assignable: bool


class WorkloadResponse(BaseModel):
    law_firm_id: uuid.UUID | None = None
    entries: list[WorkloadEntry]
    total_assignments: int


class ReconcileResponse(BaseModel):
    checked: int
    # staff_id -> corrected counter value
    corrections: dict[str, int]
