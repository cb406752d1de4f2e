"""Transactions: Pydantic v2 schemas."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from closings.models.enums import (
    ActivityAction,
    ClosingType,
    OrderType,
    PropertyType,
    TitleStatus,
    TransactionStatus,
)


class TransactionCreate(BaseModel):
    law_firm_id: uuid.UUID
    # Admins open orders on behalf of a customer; customers always own theirs
    customer_id: uuid.UUID | None = None
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: str | None = Field(default=None, max_length=320)

    property_street: str = Field(..., min_length=1, max_length=255)
    property_city: str = Field(..., min_length=1, max_length=120)
    property_state: str = Field(..., min_length=2, max_length=2)
    property_zip: str = Field(..., min_length=5, max_length=10)
    property_type: PropertyType = PropertyType.RESIDENTIAL
    sale_amount: Decimal | None = Field(default=None, ge=0)

    closing_type: ClosingType = ClosingType.PURCHASE
    order_type: OrderType | None = None

    estimated_closing_date: date | None = None
    closing_time: str | None = Field(default=None, max_length=20)
    closing_location: str | None = None
    notes: str | None = Field(default=None, max_length=5000)


class StatusUpdate(BaseModel):
    status: TransactionStatus


class TitleStatusUpdate(BaseModel):
    title_status: TitleStatus


class ScheduleUpdate(BaseModel):
    """Partial write: only fields present in the request body are changed."""

    estimated_closing_date: date | None = None
    closing_time: str | None = Field(default=None, max_length=20)
    closing_location: str | None = None


class AssignmentUpdate(BaseModel):
    staff_id: uuid.UUID | None = None


class TransactionResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    law_firm_id: uuid.UUID
    customer_id: uuid.UUID
    customer_name: str
    customer_email: str | None = None
    property_street: str
    property_city: str
    property_state: str
    property_zip: str
    property_type: PropertyType
    sale_amount: Decimal | None = None
    closing_type: ClosingType
    order_type: OrderType | None = None
    effective_order_type: OrderType
    status: TransactionStatus
    title_status: TitleStatus | None = None
    effective_title_status: TitleStatus
    assigned_attorney_id: uuid.UUID | None = None
    estimated_closing_date: date | None = None
    closing_time: str | None = None
    closing_location: str | None = None
    needs_date: bool | None = None
    needs_time: bool | None = None
    needs_location: bool | None = None
    notes: str | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TransactionListResponse(BaseModel):
    items: list[TransactionResponse]
    total: int


class ActivityResponse(BaseModel):
    id: uuid.UUID
    transaction_id: uuid.UUID
    actor_id: uuid.UUID | None = None
    action: ActivityAction
    previous_value: str | None = None
    new_value: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
