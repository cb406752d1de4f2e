"""SQLAlchemy models package: import all models so Base.metadata is populated."""

from closings.models.base import BaseModel, ModelMixin, TimestampedModel
from closings.models.core import LawFirm, Staff
from closings.models.enums import (
    OPEN_STATUSES,
    ActivityAction,
    ClosingType,
    HealthIssue,
    LawFirmStatus,
    OrderType,
    PropertyType,
    StaffRole,
    TitleStatus,
    TransactionStatus,
    UserRole,
)
from closings.models.transactions import Transaction, TransactionActivity

__all__ = [
    "OPEN_STATUSES",
    "ActivityAction",
    "BaseModel",
    "ClosingType",
    "HealthIssue",
    "LawFirm",
    "LawFirmStatus",
    "ModelMixin",
    "OrderType",
    "PropertyType",
    "Staff",
    "StaffRole",
    "TimestampedModel",
    "TitleStatus",
    "Transaction",
    "TransactionActivity",
    "TransactionStatus",
    "UserRole",
]
