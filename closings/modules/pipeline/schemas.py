"""Pipeline view: Pydantic v2 schemas."""

import enum
import uuid
from datetime import datetime

from pydantic import BaseModel

from closings.models.enums import OrderType, TitleStatus, TransactionStatus
from closings.modules.health.schemas import HealthFlag
from closings.modules.staff.schemas import WorkloadEntry
from closings.modules.transactions.schemas import TransactionResponse


class PipelineTab(str, enum.Enum):
    ALL = "all"
    OPEN = "open"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class PipelineStats(BaseModel):
    status_counts: dict[TransactionStatus, int]
    title_status_counts: dict[TitleStatus, int]
    order_type_counts: dict[OrderType, int]
    need_counts: dict[str, int]
    tab_counts: dict[PipelineTab, int]
    ready_to_close: int
    closed_recently: int
    avg_days_to_completion: int


class PipelinePage(BaseModel):
    items: list[TransactionResponse]
    page: int
    page_size: int
    total: int
    total_pages: int


class PipelineView(BaseModel):
    as_of: datetime
    law_firm_id: uuid.UUID | None = None
    tab: PipelineTab
    search: str | None = None
    page: PipelinePage
    stats: PipelineStats
    workload: list[WorkloadEntry]
    health_flags: list[HealthFlag]
    degraded: bool = False
    error: str | None = None
