"""Core models: LawFirm and Staff."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from closings.models.base import BaseModel, enum_column
from closings.models.enums import LawFirmStatus, StaffRole


class LawFirm(BaseModel):
    __tablename__ = "law_firms"
    __table_args__ = (
        Index("ix_law_firms_slug", "slug", unique=True),
        Index("ix_law_firms_owner_id", "owner_id"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320))
    # User id of the firm principal
    owner_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    status: Mapped[LawFirmStatus] = mapped_column(
        enum_column(LawFirmStatus), nullable=False, default=LawFirmStatus.PENDING
    )
    is_disabled: Mapped[bool] = mapped_column(default=False, nullable=False)

    # Relationships
    staff: Mapped[list["Staff"]] = relationship(back_populates="law_firm")

    def __repr__(self) -> str:
        return f"<LawFirm(id={self.id}, name={self.name!r}, status={self.status.value})>"


class Staff(BaseModel):
    """An attorney or closer employed by a law firm."""

    __tablename__ = "staff"
    __table_args__ = (
        Index("ix_staff_law_firm_id", "law_firm_id"),
        Index("ix_staff_profile_id", "profile_id"),
    )

    law_firm_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("law_firms.id", ondelete="CASCADE"),
        nullable=False,
    )
    profile_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320))
    title: Mapped[str | None] = mapped_column(String(255))
    bar_number: Mapped[str | None] = mapped_column(String(64))
    staff_role: Mapped[StaffRole] = mapped_column(
        enum_column(StaffRole), nullable=False, default=StaffRole.ATTORNEY
    )

    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    is_disabled: Mapped[bool] = mapped_column(default=False, nullable=False)
    disabled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    disabled_reason: Mapped[str | None] = mapped_column(Text)

    can_be_assigned: Mapped[bool] = mapped_column(default=True, nullable=False)
    max_assignments: Mapped[int | None] = mapped_column(Integer)
    # Advisory cache; rebuilt by the workload reconciliation job
    current_assignments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    law_firm: Mapped["LawFirm"] = relationship(back_populates="staff")

    @property
    def is_assignable(self) -> bool:
        return self.is_active and not self.is_disabled and self.can_be_assigned

    def __repr__(self) -> str:
        return f"<Staff(id={self.id}, name={self.full_name!r}, load={self.current_assignments})>"
