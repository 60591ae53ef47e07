"""Leave ORM models: TimeOffCategory, TimeOffRequest."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from hrms.common.constants import ApprovalStatus
from hrms.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimeOffCategory(Base):
    __tablename__ = "time_off_categories"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(sa.String(100), unique=True, nullable=False)
    annual_quota: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0"),
    )
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    is_paid: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=True, server_default=sa.true(),
    )
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=True, server_default=sa.true(),
    )
    author_id: Mapped[Optional[int]] = mapped_column(sa.Integer)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=_utcnow,
        server_default=sa.func.now(),
        onupdate=_utcnow,
    )

    __table_args__ = (
        sa.CheckConstraint("annual_quota >= 0", name="ck_time_off_category_quota"),
    )

    def __repr__(self) -> str:
        return f"<TimeOffCategory {self.title!r} quota={self.annual_quota}>"


class TimeOffRequest(Base):
    __tablename__ = "time_off_requests"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    staff_member_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("staff_members.id"), nullable=False,
    )
    time_off_category_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("time_off_categories.id"), nullable=False,
    )
    request_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    total_days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        sa.Enum(
            ApprovalStatus,
            name="approval_status",
            native_enum=False,
            length=20,
        ),
        nullable=False,
        default=ApprovalStatus.pending,
        server_default=ApprovalStatus.pending.value,
    )
    approver_id: Mapped[Optional[int]] = mapped_column(sa.Integer)
    approval_remarks: Mapped[Optional[str]] = mapped_column(sa.Text)
    decided_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    cancelled_by: Mapped[Optional[int]] = mapped_column(sa.Integer)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    author_id: Mapped[Optional[int]] = mapped_column(sa.Integer)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=_utcnow,
        server_default=sa.func.now(),
        onupdate=_utcnow,
    )

    __table_args__ = (
        sa.CheckConstraint("end_date >= start_date", name="ck_time_off_request_range"),
        sa.Index("ix_time_off_requests_staff_status", "staff_member_id", "approval_status"),
        sa.Index("ix_time_off_requests_category", "time_off_category_id"),
        sa.Index("ix_time_off_requests_start_date", "start_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<TimeOffRequest {self.id} staff={self.staff_member_id} "
            f"{self.start_date}..{self.end_date} {self.approval_status.value}>"
        )
