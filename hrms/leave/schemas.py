"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update / *Request  → request bodies (write)
  - *Out                          → response bodies (read)
  - *Filters                      → list query parameters
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hrms.common.constants import ApprovalStatus
from hrms.config import settings


def inclusive_days(start: date, end: date) -> int:
    """Number of calendar days in [start, end], both ends included."""
    return (end - start).days + 1


def _check_range(start: Optional[date], end: Optional[date]) -> None:
    if start is None or end is None:
        return
    if start > end:
        raise ValueError("start_date must be on or before end_date.")
    if inclusive_days(start, end) > settings.MAX_REQUEST_SPAN_DAYS:
        raise ValueError(
            f"Leave request cannot span more than "
            f"{settings.MAX_REQUEST_SPAN_DAYS} days."
        )


# ═════════════════════════════════════════════════════════════════════
# Time-off Category
# ═════════════════════════════════════════════════════════════════════


class TimeOffCategoryCreate(BaseModel):
    """Payload for creating a leave category."""

    title: str = Field(..., min_length=1, max_length=100)
    annual_quota: int = Field(..., ge=0, le=366, description="Days per year")
    notes: Optional[str] = Field(None, max_length=2000)
    is_paid: bool = True
    is_active: bool = True


class TimeOffCategoryUpdate(BaseModel):
    """Partial update; title and is_paid are frozen once requests exist."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=100)
    annual_quota: Optional[int] = Field(None, ge=0, le=366)
    notes: Optional[str] = Field(None, max_length=2000)
    is_paid: Optional[bool] = None
    is_active: Optional[bool] = None


class TimeOffCategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    annual_quota: int
    notes: Optional[str] = None
    is_paid: bool
    is_active: bool
    author_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class CategoryDropdownItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str


# ═════════════════════════════════════════════════════════════════════
# Time-off Request — Create / Update
# ═════════════════════════════════════════════════════════════════════


class TimeOffRequestCreate(BaseModel):
    """Payload for filing a leave request."""

    staff_member_id: Optional[int] = Field(
        None, description="Defaults to the caller's own staff record",
    )
    time_off_category_id: int
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_dates(self) -> "TimeOffRequestCreate":
        _check_range(self.start_date, self.end_date)
        return self


class TimeOffRequestUpdate(BaseModel):
    """Patch for a pending request. Owner and status are not patchable."""

    model_config = ConfigDict(extra="forbid")

    time_off_category_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_dates(self) -> "TimeOffRequestUpdate":
        _check_range(self.start_date, self.end_date)
        return self


# ═════════════════════════════════════════════════════════════════════
# Approve / Decline
# ═════════════════════════════════════════════════════════════════════


class ApproveRequest(BaseModel):
    """Payload for approving a leave request."""

    remarks: Optional[str] = Field(None, max_length=500)


class DeclineRequest(BaseModel):
    """Payload for declining a leave request; remarks are mandatory."""

    remarks: Optional[str] = Field(None, max_length=500)


# ═════════════════════════════════════════════════════════════════════
# Time-off Request — Response
# ═════════════════════════════════════════════════════════════════════


class TimeOffRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    staff_member_id: int
    time_off_category_id: int
    request_date: date
    start_date: date
    end_date: date
    total_days: int
    reason: Optional[str] = None
    approval_status: ApprovalStatus
    approver_id: Optional[int] = None
    approval_remarks: Optional[str] = None
    decided_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    author_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class TimeOffRequestFilters(BaseModel):
    """Filters for request listings. All optional, AND-ed together."""

    staff_member_id: Optional[int] = None
    time_off_category_id: Optional[int] = None
    approval_status: Optional[ApprovalStatus] = None
    start_date: Optional[date] = Field(
        None, description="Requests starting on or after this date",
    )
    end_date: Optional[date] = Field(
        None, description="Requests ending on or before this date",
    )
    month: Optional[int] = Field(None, ge=1, le=12)
    year: Optional[int] = Field(None, ge=1900, le=9999)
    search: Optional[str] = Field(None, max_length=200)


# ═════════════════════════════════════════════════════════════════════
# Balance / Statistics / On-leave
# ═════════════════════════════════════════════════════════════════════


class CategoryBalance(BaseModel):
    title: str
    quota: int
    used: int
    remaining: int


class LeaveBalanceOut(BaseModel):
    """Per-category balance for one staff member and year."""

    staff_member_id: int
    year: int
    balances: dict[int, CategoryBalance]


class LeaveStatisticsOut(BaseModel):
    staff_member_id: Optional[int] = None
    total: int = 0
    pending: int = 0
    approved: int = 0
    declined: int = 0
    cancelled: int = 0
    total_days_approved: int = 0


class OnLeaveOut(BaseModel):
    on_date: date
    data: list[TimeOffRequestOut]
