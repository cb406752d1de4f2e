"""Transaction (closing order) and its activity log."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from closings.models.base import BaseModel, TimestampedModel, enum_column
from closings.models.enums import (
    ActivityAction,
    ClosingType,
    OrderType,
    PropertyType,
    TitleStatus,
    TransactionStatus,
)


class Transaction(BaseModel):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_order_number", "order_number", unique=True),
        Index("ix_transactions_law_firm_id", "law_firm_id"),
        Index("ix_transactions_customer_id", "customer_id"),
        Index("ix_transactions_assigned_attorney_id", "assigned_attorney_id"),
        Index("ix_transactions_firm_status", "law_firm_id", "status"),
        CheckConstraint(
            "(status = 'completed' AND completed_at IS NOT NULL)"
            " OR (status <> 'completed' AND completed_at IS NULL)",
            name="ck_transactions_completed_at_matches_status",
        ),
    )

    order_number: Mapped[str] = mapped_column(String(32), nullable=False)
    law_firm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("law_firms.id", ondelete="CASCADE"),
        nullable=False,
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str | None] = mapped_column(String(320))

    property_street: Mapped[str] = mapped_column(String(255), nullable=False)
    property_city: Mapped[str] = mapped_column(String(120), nullable=False)
    property_state: Mapped[str] = mapped_column(String(2), nullable=False)
    property_zip: Mapped[str] = mapped_column(String(10), nullable=False)
    property_type: Mapped[PropertyType] = mapped_column(
        enum_column(PropertyType), nullable=False, default=PropertyType.RESIDENTIAL
    )
    sale_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))

    closing_type: Mapped[ClosingType] = mapped_column(
        enum_column(ClosingType), nullable=False, default=ClosingType.PURCHASE
    )
    order_type: Mapped[OrderType | None] = mapped_column(enum_column(OrderType))

    status: Mapped[TransactionStatus] = mapped_column(
        enum_column(TransactionStatus), nullable=False, default=TransactionStatus.NEW
    )
    title_status: Mapped[TitleStatus | None] = mapped_column(enum_column(TitleStatus))

    assigned_attorney_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("staff.id", ondelete="SET NULL"),
    )

    # Scheduling
    estimated_closing_date: Mapped[date | None] = mapped_column(Date)
    closing_time: Mapped[str | None] = mapped_column(String(20))
    closing_location: Mapped[str | None] = mapped_column(Text)
    needs_date: Mapped[bool | None] = mapped_column()
    needs_time: Mapped[bool | None] = mapped_column()
    needs_location: Mapped[bool | None] = mapped_column()

    notes: Mapped[str | None] = mapped_column(Text)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Relationships
    activity: Mapped[list["TransactionActivity"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionActivity.created_at",
    )

    @validates("created_at")
    def _created_at_is_immutable(self, key: str, value: datetime) -> datetime:
        current = self.__dict__.get("created_at")
        if current is not None and value != current:
            raise ValueError("created_at cannot be changed once set")
        return value

    @property
    def effective_title_status(self) -> TitleStatus:
        return self.title_status or TitleStatus.UNASSIGNED

    @property
    def effective_order_type(self) -> OrderType:
        return self.order_type or OrderType.CLOSING

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, number={self.order_number!r}, status={self.status.value!r})>"


class TransactionActivity(TimestampedModel):
    """Append-only record of lifecycle changes on a transaction."""

    __tablename__ = "transaction_activity"
    __table_args__ = (
        Index("ix_transaction_activity_transaction_id", "transaction_id"),
    )

    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
    )
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    action: Mapped[ActivityAction] = mapped_column(enum_column(ActivityAction), nullable=False)
    previous_value: Mapped[str | None] = mapped_column(String(255))
    new_value: Mapped[str | None] = mapped_column(String(255))

    # Relationships
    transaction: Mapped["Transaction"] = relationship(back_populates="activity")

    def __repr__(self) -> str:
        return f"<TransactionActivity(id={self.id}, action={self.action.value!r})>"
