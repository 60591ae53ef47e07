"""Leave router — requests, approvals, balances, statistics, categories.

All endpoints require a bearer token. Who may do what is decided by
``hrms.auth.policy`` inside the service layer.
"""

import logging
from datetime import date
from typing import Any, Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.identity import Identity, get_current_identity
from hrms.common.constants import ApprovalStatus
from hrms.common.exceptions import ConflictError
from hrms.common.pagination import PaginatedResponse, PaginationParams
from hrms.database import get_db
from hrms.leave.schemas import (
    ApproveRequest,
    CategoryDropdownItem,
    DeclineRequest,
    LeaveBalanceOut,
    LeaveStatisticsOut,
    OnLeaveOut,
    TimeOffCategoryCreate,
    TimeOffCategoryOut,
    TimeOffCategoryUpdate,
    TimeOffRequestCreate,
    TimeOffRequestFilters,
    TimeOffRequestOut,
    TimeOffRequestUpdate,
)
from hrms.leave.service import LeaveService, TimeOffCategoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["leave"])


async def _retry_on_conflict(op: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
    """Run a write once more if a concurrent writer beat it to the row."""
    try:
        return await op(*args, **kwargs)
    except ConflictError:
        logger.info("Write conflict in %s; retrying once", op.__qualname__)
        return await op(*args, **kwargs)


def _request_filters(
    staff_member_id: Optional[int] = Query(None),
    time_off_category_id: Optional[int] = Query(None),
    status: Optional[ApprovalStatus] = Query(None),
    start_date: Optional[date] = Query(None, description="Starting on or after"),
    end_date: Optional[date] = Query(None, description="Ending on or before"),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1900, le=9999),
    search: Optional[str] = Query(None, max_length=200),
) -> TimeOffRequestFilters:
    return TimeOffRequestFilters(
        staff_member_id=staff_member_id,
        time_off_category_id=time_off_category_id,
        approval_status=status,
        start_date=start_date,
        end_date=end_date,
        month=month,
        year=year,
        search=search,
    )


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=TimeOffRequestOut, status_code=201)
async def create_request(
    body: TimeOffRequestCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """File a leave request for yourself, or for anyone as an admin."""
    return await _retry_on_conflict(LeaveService.create_request, db, body, identity)


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=PaginatedResponse[TimeOffRequestOut])
async def list_requests(
    filters: TimeOffRequestFilters = Depends(_request_filters),
    params: PaginationParams = Depends(),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """All requests for admins; your own for everyone else."""
    return await LeaveService.list_requests(db, filters, params, identity)


# ── GET /requests/mine ──────────────────────────────────────────────

@router.get("/requests/mine", response_model=PaginatedResponse[TimeOffRequestOut])
async def list_my_requests(
    filters: TimeOffRequestFilters = Depends(_request_filters),
    params: PaginationParams = Depends(),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.list_my_requests(db, filters, params, identity)


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=TimeOffRequestOut)
async def get_request(
    request_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_by_id(db, request_id, identity)


# ── PATCH /requests/{id} ────────────────────────────────────────────

@router.patch("/requests/{request_id}", response_model=TimeOffRequestOut)
async def update_request(
    request_id: int,
    body: TimeOffRequestUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Edit category, dates or reason of a pending request."""
    return await _retry_on_conflict(
        LeaveService.update_request, db, request_id, body, identity,
    )


# ── DELETE /requests/{id} ───────────────────────────────────────────

@router.delete("/requests/{request_id}", status_code=204)
async def delete_request(
    request_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await LeaveService.delete_request(db, request_id, identity)


# ── POST /requests/{id}/cancel ──────────────────────────────────────

@router.post("/requests/{request_id}/cancel", response_model=TimeOffRequestOut)
async def cancel_request(
    request_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.cancel(db, request_id, identity)


# ── POST /requests/{id}/approve ─────────────────────────────────────

@router.post("/requests/{request_id}/approve", response_model=TimeOffRequestOut)
async def approve_request(
    request_id: int,
    body: Optional[ApproveRequest] = None,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.approve(
        db, request_id, identity, remarks=body.remarks if body else None,
    )


# ── POST /requests/{id}/decline ─────────────────────────────────────

@router.post("/requests/{request_id}/decline", response_model=TimeOffRequestOut)
async def decline_request(
    request_id: int,
    body: DeclineRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Decline a pending request; remarks are mandatory."""
    return await LeaveService.decline(db, request_id, identity, body.remarks)


# ═════════════════════════════════════════════════════════════════════
# Balance / statistics / on-leave
# ═════════════════════════════════════════════════════════════════════


@router.get("/balance", response_model=LeaveBalanceOut)
async def get_balance(
    staff_member_id: Optional[int] = Query(None),
    year: Optional[int] = Query(None, ge=1900, le=9999),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Balance per active category; another staff member's needs an admin role."""
    return await LeaveService.get_leave_balance(
        db, identity, staff_member_id=staff_member_id, year=year,
    )


@router.get("/balance/mine", response_model=LeaveBalanceOut)
async def get_my_balance(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave_balance(db, identity, year=year)


@router.get("/statistics", response_model=LeaveStatisticsOut)
async def get_statistics(
    staff_member_id: Optional[int] = Query(None),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_statistics(
        db, identity, staff_member_id=staff_member_id,
    )


@router.get("/on-leave", response_model=OnLeaveOut)
async def get_on_leave(
    on_date: Optional[date] = Query(None, alias="date"),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Staff with approved leave covering the given date (default today)."""
    return await LeaveService.get_on_leave(db, identity, on_date=on_date)


# ═════════════════════════════════════════════════════════════════════
# Categories
# ═════════════════════════════════════════════════════════════════════


@router.get("/categories", response_model=PaginatedResponse[TimeOffCategoryOut])
async def list_categories(
    is_active: Optional[bool] = Query(None),
    is_paid: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    params: PaginationParams = Depends(),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await TimeOffCategoryService.list_categories(
        db, params, is_active=is_active, is_paid=is_paid, search=search,
    )


@router.post("/categories", response_model=TimeOffCategoryOut, status_code=201)
async def create_category(
    body: TimeOffCategoryCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await _retry_on_conflict(
        TimeOffCategoryService.create_category, db, body, identity,
    )


@router.get("/categories/dropdown", response_model=list[CategoryDropdownItem])
async def category_dropdown(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Active categories as id/title pairs, ordered by title."""
    return await TimeOffCategoryService.dropdown(db)


@router.get("/categories/{category_id}", response_model=TimeOffCategoryOut)
async def get_category(
    category_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await TimeOffCategoryService.get_category(db, category_id)


@router.patch("/categories/{category_id}", response_model=TimeOffCategoryOut)
async def update_category(
    category_id: int,
    body: TimeOffCategoryUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await _retry_on_conflict(
        TimeOffCategoryService.update_category, db, category_id, body, identity,
    )


@router.delete("/categories/{category_id}", status_code=204)
async def delete_category(
    category_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await TimeOffCategoryService.delete_category(db, category_id, identity)
