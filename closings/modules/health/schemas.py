"""Health flags: Pydantic v2 schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from closings.models.enums import HealthIssue


class HealthFlag(BaseModel):
    """Derived, never persisted: one service-level issue on one open transaction."""

    model_config = ConfigDict(frozen=True)

    transaction_id: uuid.UUID
    issue: HealthIssue
    age_in_days: int
    order_number: str | None = None
    law_firm_id: uuid.UUID | None = None


class HealthScanResponse(BaseModel):
    as_of: datetime
    flags: list[HealthFlag]
    counts: dict[HealthIssue, int]
    degraded: bool = False
    error: str | None = None
