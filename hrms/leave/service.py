"""Leave service layer — request lifecycle, overlap checks, balances, categories.

Business logic:
  - Filing and editing requests with date-range validation and overlap
    detection against the staff member's live (pending/approved) requests
  - Approval / decline / cancellation through a single transition table
  - Per-year balance against each active category's annual quota
  - Scoped listings, statistics and the "who is on leave" view
  - Category management with reference guards

Writers that check overlaps lock the owning staff row first; PostgreSQL
additionally enforces non-overlap with an exclusion constraint, whose
violation surfaces here as ConflictError.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.identity import Identity
from hrms.auth.policy import (
    is_admin,
    require_admin,
    require_owner_or_admin,
    resolve_target_staff,
    scoped_staff_member_id,
)
from hrms.common.audit import audit_sink, record_audit
from hrms.common.constants import (
    ENTITY_TIME_OFF_CATEGORY,
    ENTITY_TIME_OFF_REQUEST,
    LIVE_STATUSES,
    TRANSITIONS,
    ApprovalStatus,
    AuditAction,
    LeaveAction,
)
from hrms.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    OverlapException,
    ValidationException,
)
from hrms.common.filters import apply_filters, apply_search
from hrms.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)
from hrms.config import settings
from hrms.leave.models import TimeOffCategory, TimeOffRequest
from hrms.leave.schemas import (
    CategoryBalance,
    CategoryDropdownItem,
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
    inclusive_days,
)
from hrms.staff.service import StaffDirectory

logger = logging.getLogger(__name__)


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Inclusive ranges overlap when they share at least one day."""
    return a_start <= b_end and b_start <= a_end


def next_status(current: ApprovalStatus, action: LeaveAction) -> ApprovalStatus:
    """Look up the transition table; refuse anything it does not list."""
    target = TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidStateException(
            f"Cannot {action.value} a leave request that is {current.value}."
        )
    return target


async def _flush_or_conflict(db: AsyncSession) -> None:
    """Flush; a constraint violation means a concurrent writer won."""
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        audit_sink.discard_pending(db)
        logger.warning("Write conflict at flush: %s", exc.orig)
        raise ConflictError() from exc


def _snapshot(leave_req: TimeOffRequest) -> dict[str, Any]:
    return {
        "approval_status": leave_req.approval_status.value,
        "time_off_category_id": leave_req.time_off_category_id,
        "start_date": leave_req.start_date,
        "end_date": leave_req.end_date,
        "total_days": leave_req.total_days,
        "reason": leave_req.reason,
    }


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async operations on time-off requests."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _load(
        db: AsyncSession,
        request_id: int,
        *,
        for_update: bool = False,
    ) -> TimeOffRequest:
        query = select(TimeOffRequest).where(TimeOffRequest.id == request_id)
        if for_update:
            query = query.with_for_update()
        leave_req = (await db.execute(query)).scalars().first()
        if leave_req is None:
            raise NotFoundException("TimeOffRequest", request_id)
        return leave_req

    @staticmethod
    async def _load_owned(
        db: AsyncSession,
        request_id: int,
        identity: Identity,
        *,
        for_update: bool = False,
    ) -> TimeOffRequest:
        """Load a request the caller may act on.

        Self-service callers get the same ForbiddenException for a missing
        id as for someone else's.
        """
        try:
            leave_req = await LeaveService._load(db, request_id, for_update=for_update)
        except NotFoundException:
            if is_admin(identity):
                raise
            raise ForbiddenException() from None
        require_owner_or_admin(identity, leave_req.staff_member_id)
        return leave_req

    @staticmethod
    def _validate_dates(
        start: date,
        end: date,
        *,
        check_past: bool,
    ) -> None:
        errors: dict[str, list[str]] = {}
        if start > end:
            errors.setdefault("end_date", []).append(
                "end_date must be on or after start_date."
            )
        elif inclusive_days(start, end) > settings.MAX_REQUEST_SPAN_DAYS:
            errors.setdefault("end_date", []).append(
                f"Leave request cannot span more than "
                f"{settings.MAX_REQUEST_SPAN_DAYS} days."
            )
        if check_past and start < date.today():
            errors.setdefault("start_date", []).append(
                "start_date cannot be in the past."
            )
        if errors:
            raise ValidationException(errors)

    @staticmethod
    async def _find_overlap(
        db: AsyncSession,
        staff_member_id: int,
        start: date,
        end: date,
        *,
        exclude_id: Optional[int] = None,
    ) -> Optional[int]:
        """Id of a live request of the staff member sharing a day with [start, end]."""
        query = select(TimeOffRequest.id).where(
            TimeOffRequest.staff_member_id == staff_member_id,
            TimeOffRequest.approval_status.in_(list(LIVE_STATUSES)),
            TimeOffRequest.start_date <= end,
            TimeOffRequest.end_date >= start,
        )
        if exclude_id is not None:
            query = query.where(TimeOffRequest.id != exclude_id)
        return (await db.execute(query.order_by(TimeOffRequest.id).limit(1))).scalar()

    # ─────────────────────────────────────────────────────────────────
    # Create
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_request(
        db: AsyncSession,
        data: TimeOffRequestCreate,
        identity: Identity,
    ) -> TimeOffRequestOut:
        """File a new request in ``pending``.

        - Staff member defaults to the caller; others need an admin role
        - No retroactive requests
        - Staff member and category must exist and be active
        - No overlap with the staff member's live requests
        """
        staff_member_id = resolve_target_staff(identity, data.staff_member_id)
        LeaveService._validate_dates(data.start_date, data.end_date, check_past=True)

        # ── Serialise writers for this staff member ─────────────────
        await StaffDirectory.lock(db, staff_member_id)
        await TimeOffCategoryService.get_active(db, data.time_off_category_id)

        conflicting_id = await LeaveService._find_overlap(
            db, staff_member_id, data.start_date, data.end_date,
        )
        if conflicting_id is not None:
            raise OverlapException(conflicting_id)

        leave_req = TimeOffRequest(
            staff_member_id=staff_member_id,
            time_off_category_id=data.time_off_category_id,
            request_date=date.today(),
            start_date=data.start_date,
            end_date=data.end_date,
            total_days=inclusive_days(data.start_date, data.end_date),
            reason=data.reason,
            approval_status=ApprovalStatus.pending,
            author_id=identity.user_id,
        )
        db.add(leave_req)
        await _flush_or_conflict(db)

        record_audit(
            db,
            action=AuditAction.create.value,
            entity_type=ENTITY_TIME_OFF_REQUEST,
            entity_id=leave_req.id,
            actor_id=identity.user_id,
            new_values=_snapshot(leave_req),
        )
        logger.info(
            "Leave request %s filed for staff %s (%s..%s, %d days) by user %s",
            leave_req.id, staff_member_id, leave_req.start_date,
            leave_req.end_date, leave_req.total_days, identity.user_id,
        )
        return TimeOffRequestOut.model_validate(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Read
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _filtered_query(
        filters: TimeOffRequestFilters,
        staff_member_id: Optional[int],
    ):
        query = select(TimeOffRequest).order_by(
            TimeOffRequest.created_at.desc(),
            TimeOffRequest.id.desc(),
        )
        query = apply_filters(
            query,
            TimeOffRequest,
            {
                "staff_member_id": staff_member_id,
                "time_off_category_id": filters.time_off_category_id,
                "approval_status": filters.approval_status,
                "start_date__from": filters.start_date,
                "end_date__to": filters.end_date,
                "start_date__month": filters.month,
                "start_date__year": filters.year,
            },
        )
        return apply_search(query, TimeOffRequest, filters.search, ["reason"])

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        filters: TimeOffRequestFilters,
        params: PaginationParams,
        identity: Identity,
    ) -> PaginatedResponse:
        """All requests for admins; self-service callers only ever see their own."""
        staff_member_id = scoped_staff_member_id(identity, filters.staff_member_id)
        if staff_member_id is None and not is_admin(identity):
            return PaginatedResponse(data=[], meta=PaginationMeta.empty(params.page_size))

        query = LeaveService._filtered_query(filters, staff_member_id)
        return await paginate(
            db, query, params,
            model=TimeOffRequest,
            transform=TimeOffRequestOut.model_validate,
        )

    @staticmethod
    async def list_my_requests(
        db: AsyncSession,
        filters: TimeOffRequestFilters,
        params: PaginationParams,
        identity: Identity,
    ) -> PaginatedResponse:
        """The caller's own requests, whatever their role."""
        if identity.staff_member_id is None:
            return PaginatedResponse(data=[], meta=PaginationMeta.empty(params.page_size))

        query = LeaveService._filtered_query(filters, identity.staff_member_id)
        return await paginate(
            db, query, params,
            model=TimeOffRequest,
            transform=TimeOffRequestOut.model_validate,
        )

    @staticmethod
    async def get_by_id(
        db: AsyncSession,
        request_id: int,
        identity: Identity,
    ) -> TimeOffRequestOut:
        leave_req = await LeaveService._load_owned(db, request_id, identity)
        return TimeOffRequestOut.model_validate(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Update
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_request(
        db: AsyncSession,
        request_id: int,
        data: TimeOffRequestUpdate,
        identity: Identity,
    ) -> TimeOffRequestOut:
        """Patch category, dates or reason of a pending request."""
        leave_req = await LeaveService._load_owned(db, request_id, identity, for_update=True)
        if leave_req.approval_status != ApprovalStatus.pending:
            raise InvalidStateException(
                f"Only pending leave requests can be edited; this one is "
                f"{leave_req.approval_status.value}."
            )

        patch = data.model_dump(exclude_unset=True)
        new_start = patch.get("start_date") or leave_req.start_date
        new_end = patch.get("end_date") or leave_req.end_date
        LeaveService._validate_dates(
            new_start,
            new_end,
            check_past=new_start != leave_req.start_date,
        )

        await StaffDirectory.lock(db, leave_req.staff_member_id, active_only=False)

        new_category = patch.get("time_off_category_id")
        if new_category is not None and new_category != leave_req.time_off_category_id:
            await TimeOffCategoryService.get_active(db, new_category)

        if (new_start, new_end) != (leave_req.start_date, leave_req.end_date):
            conflicting_id = await LeaveService._find_overlap(
                db, leave_req.staff_member_id, new_start, new_end,
                exclude_id=leave_req.id,
            )
            if conflicting_id is not None:
                raise OverlapException(conflicting_id)

        old_values = _snapshot(leave_req)
        if new_category is not None:
            leave_req.time_off_category_id = new_category
        if "reason" in patch:
            leave_req.reason = patch["reason"]
        leave_req.start_date = new_start
        leave_req.end_date = new_end
        leave_req.total_days = inclusive_days(new_start, new_end)
        leave_req.updated_at = datetime.now(timezone.utc)
        await _flush_or_conflict(db)

        record_audit(
            db,
            action=AuditAction.update.value,
            entity_type=ENTITY_TIME_OFF_REQUEST,
            entity_id=leave_req.id,
            actor_id=identity.user_id,
            old_values=old_values,
            new_values=_snapshot(leave_req),
        )
        logger.info("Leave request %s updated by user %s", leave_req.id, identity.user_id)
        return TimeOffRequestOut.model_validate(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel(
        db: AsyncSession,
        request_id: int,
        identity: Identity,
    ) -> TimeOffRequestOut:
        """Cancel a pending or approved request (owner or admin)."""
        leave_req = await LeaveService._load_owned(db, request_id, identity, for_update=True)
        target = next_status(leave_req.approval_status, LeaveAction.cancel)

        now = datetime.now(timezone.utc)
        old_status = leave_req.approval_status
        leave_req.approval_status = target
        leave_req.cancelled_by = identity.user_id
        leave_req.cancelled_at = now
        # A cancelled request carries no decision; the audit trail keeps it.
        leave_req.approver_id = None
        leave_req.decided_at = None
        leave_req.updated_at = now
        await db.flush()

        record_audit(
            db,
            action=AuditAction.cancel.value,
            entity_type=ENTITY_TIME_OFF_REQUEST,
            entity_id=leave_req.id,
            actor_id=identity.user_id,
            old_values={"approval_status": old_status.value},
            new_values={"approval_status": target.value},
        )
        logger.info(
            "Leave request %s cancelled (%s -> %s) by user %s",
            leave_req.id, old_status.value, target.value, identity.user_id,
        )
        return TimeOffRequestOut.model_validate(leave_req)

    @staticmethod
    async def approve(
        db: AsyncSession,
        request_id: int,
        identity: Identity,
        *,
        remarks: Optional[str] = None,
    ) -> TimeOffRequestOut:
        require_admin(identity)
        leave_req = await LeaveService._load(db, request_id, for_update=True)
        target = next_status(leave_req.approval_status, LeaveAction.approve)
        return await LeaveService._decide(
            db, leave_req, identity, target, AuditAction.approve, remarks,
        )

    @staticmethod
    async def decline(
        db: AsyncSession,
        request_id: int,
        identity: Identity,
        remarks: Optional[str],
    ) -> TimeOffRequestOut:
        """Decline a pending request. A reason is mandatory."""
        require_admin(identity)
        remarks = (remarks or "").strip()
        if not remarks:
            raise ValidationException(
                {"remarks": ["Remarks are required when declining a leave request."]}
            )
        leave_req = await LeaveService._load(db, request_id, for_update=True)
        target = next_status(leave_req.approval_status, LeaveAction.decline)
        return await LeaveService._decide(
            db, leave_req, identity, target, AuditAction.decline, remarks,
        )

    @staticmethod
    async def _decide(
        db: AsyncSession,
        leave_req: TimeOffRequest,
        identity: Identity,
        target: ApprovalStatus,
        action: AuditAction,
        remarks: Optional[str],
    ) -> TimeOffRequestOut:
        now = datetime.now(timezone.utc)
        old_status = leave_req.approval_status
        leave_req.approval_status = target
        leave_req.approver_id = identity.user_id
        leave_req.approval_remarks = remarks
        leave_req.decided_at = now
        leave_req.updated_at = now
        await db.flush()

        record_audit(
            db,
            action=action.value,
            entity_type=ENTITY_TIME_OFF_REQUEST,
            entity_id=leave_req.id,
            actor_id=identity.user_id,
            old_values={"approval_status": old_status.value},
            new_values={"approval_status": target.value, "remarks": remarks},
        )
        logger.info(
            "Leave request %s %s by user %s",
            leave_req.id, target.value, identity.user_id,
        )
        return TimeOffRequestOut.model_validate(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def delete_request(
        db: AsyncSession,
        request_id: int,
        identity: Identity,
    ) -> None:
        leave_req = await LeaveService._load_owned(db, request_id, identity, for_update=True)
        if leave_req.approval_status != ApprovalStatus.pending:
            raise InvalidStateException(
                f"Only pending leave requests can be deleted; this one is "
                f"{leave_req.approval_status.value}."
            )

        old_values = _snapshot(leave_req)
        await db.delete(leave_req)
        await db.flush()

        record_audit(
            db,
            action=AuditAction.delete.value,
            entity_type=ENTITY_TIME_OFF_REQUEST,
            entity_id=request_id,
            actor_id=identity.user_id,
            old_values=old_values,
        )
        logger.info("Leave request %s deleted by user %s", request_id, identity.user_id)

    # ─────────────────────────────────────────────────────────────────
    # Balance / statistics / on-leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_balance(
        db: AsyncSession,
        identity: Identity,
        *,
        staff_member_id: Optional[int] = None,
        year: Optional[int] = None,
    ) -> LeaveBalanceOut:
        """Quota, approved days used and remainder per active category.

        Only approved requests count, attributed to the year their
        start_date falls in. remaining never drops below zero.
        """
        staff_member_id = resolve_target_staff(identity, staff_member_id)
        await StaffDirectory.get(db, staff_member_id, active_only=False)
        year = year or date.today().year

        categories = (
            await db.execute(
                select(TimeOffCategory)
                .where(TimeOffCategory.is_active.is_(True))
                .order_by(TimeOffCategory.title)
            )
        ).scalars().all()

        used_rows = await db.execute(
            select(
                TimeOffRequest.time_off_category_id,
                func.coalesce(func.sum(TimeOffRequest.total_days), 0),
            )
            .where(
                TimeOffRequest.staff_member_id == staff_member_id,
                TimeOffRequest.approval_status == ApprovalStatus.approved,
                TimeOffRequest.start_date >= date(year, 1, 1),
                TimeOffRequest.start_date <= date(year, 12, 31),
            )
            .group_by(TimeOffRequest.time_off_category_id)
        )
        used_by_category = {cat_id: int(used) for cat_id, used in used_rows.all()}

        balances: dict[int, CategoryBalance] = {}
        for category in categories:
            used = used_by_category.get(category.id, 0)
            balances[category.id] = CategoryBalance(
                title=category.title,
                quota=category.annual_quota,
                used=used,
                remaining=max(0, category.annual_quota - used),
            )

        return LeaveBalanceOut(
            staff_member_id=staff_member_id, year=year, balances=balances,
        )

    @staticmethod
    async def get_statistics(
        db: AsyncSession,
        identity: Identity,
        *,
        staff_member_id: Optional[int] = None,
    ) -> LeaveStatisticsOut:
        """Counts per status and approved days, for one staff member or everyone."""
        if not is_admin(identity):
            staff_member_id = resolve_target_staff(identity, staff_member_id)

        query = select(
            TimeOffRequest.approval_status,
            func.count(TimeOffRequest.id),
            func.coalesce(func.sum(TimeOffRequest.total_days), 0),
        ).group_by(TimeOffRequest.approval_status)
        if staff_member_id is not None:
            query = query.where(TimeOffRequest.staff_member_id == staff_member_id)

        stats = LeaveStatisticsOut(staff_member_id=staff_member_id)
        for status, count, days in (await db.execute(query)).all():
            status = ApprovalStatus(status)
            setattr(stats, status.value, int(count))
            stats.total += int(count)
            if status == ApprovalStatus.approved:
                stats.total_days_approved = int(days)
        return stats

    @staticmethod
    async def get_on_leave(
        db: AsyncSession,
        identity: Identity,
        *,
        on_date: Optional[date] = None,
    ) -> OnLeaveOut:
        """Approved requests covering *on_date* (default today). Admin only."""
        require_admin(identity)
        on_date = on_date or date.today()
        rows = (
            await db.execute(
                select(TimeOffRequest)
                .where(
                    TimeOffRequest.approval_status == ApprovalStatus.approved,
                    TimeOffRequest.start_date <= on_date,
                    TimeOffRequest.end_date >= on_date,
                )
                .order_by(TimeOffRequest.start_date, TimeOffRequest.id)
            )
        ).scalars().all()
        return OnLeaveOut(
            on_date=on_date,
            data=[TimeOffRequestOut.model_validate(r) for r in rows],
        )


# ═════════════════════════════════════════════════════════════════════
# TimeOffCategoryService
# ═════════════════════════════════════════════════════════════════════


class TimeOffCategoryService:
    """Category directory and admin-only category management."""

    @staticmethod
    async def get(db: AsyncSession, category_id: int) -> TimeOffCategory:
        category = await db.get(TimeOffCategory, category_id)
        if category is None:
            raise NotFoundException("TimeOffCategory", category_id)
        return category

    @staticmethod
    async def get_active(db: AsyncSession, category_id: int) -> TimeOffCategory:
        result = await db.execute(
            select(TimeOffCategory).where(
                TimeOffCategory.id == category_id,
                TimeOffCategory.is_active.is_(True),
            )
        )
        category = result.scalars().first()
        if category is None:
            raise NotFoundException("TimeOffCategory", category_id)
        return category

    @staticmethod
    async def is_referenced(db: AsyncSession, category_id: int) -> bool:
        result = await db.execute(
            select(TimeOffRequest.id)
            .where(TimeOffRequest.time_off_category_id == category_id)
            .limit(1)
        )
        return result.first() is not None

    @staticmethod
    async def _ensure_unique_title(
        db: AsyncSession,
        title: str,
        *,
        exclude_id: Optional[int] = None,
    ) -> None:
        query = select(TimeOffCategory.id).where(
            func.lower(TimeOffCategory.title) == title.lower()
        )
        if exclude_id is not None:
            query = query.where(TimeOffCategory.id != exclude_id)
        if (await db.execute(query)).first() is not None:
            raise ValidationException(
                {"title": [f"A category titled '{title}' already exists."]}
            )

    # ─────────────────────────────────────────────────────────────────
    # Read
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_categories(
        db: AsyncSession,
        params: PaginationParams,
        *,
        is_active: Optional[bool] = None,
        is_paid: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> PaginatedResponse:
        query = select(TimeOffCategory).order_by(TimeOffCategory.title)
        query = apply_filters(
            query, TimeOffCategory, {"is_active": is_active, "is_paid": is_paid},
        )
        query = apply_search(query, TimeOffCategory, search, ["title", "notes"])
        return await paginate(
            db, query, params,
            model=TimeOffCategory,
            transform=TimeOffCategoryOut.model_validate,
        )

    @staticmethod
    async def get_category(db: AsyncSession, category_id: int) -> TimeOffCategoryOut:
        return TimeOffCategoryOut.model_validate(
            await TimeOffCategoryService.get(db, category_id)
        )

    @staticmethod
    async def dropdown(db: AsyncSession) -> list[CategoryDropdownItem]:
        rows = (
            await db.execute(
                select(TimeOffCategory)
                .where(TimeOffCategory.is_active.is_(True))
                .order_by(TimeOffCategory.title)
            )
        ).scalars().all()
        return [CategoryDropdownItem.model_validate(c) for c in rows]

    # ─────────────────────────────────────────────────────────────────
    # Write (admin only)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_category(
        db: AsyncSession,
        data: TimeOffCategoryCreate,
        identity: Identity,
    ) -> TimeOffCategoryOut:
        require_admin(identity)
        title = data.title.strip()
        await TimeOffCategoryService._ensure_unique_title(db, title)

        category = TimeOffCategory(
            title=title,
            annual_quota=data.annual_quota,
            notes=data.notes,
            is_paid=data.is_paid,
            is_active=data.is_active,
            author_id=identity.user_id,
        )
        db.add(category)
        await _flush_or_conflict(db)

        record_audit(
            db,
            action=AuditAction.create.value,
            entity_type=ENTITY_TIME_OFF_CATEGORY,
            entity_id=category.id,
            actor_id=identity.user_id,
            new_values=data.model_dump(),
        )
        logger.info("Leave category %s (%r) created by user %s",
                    category.id, category.title, identity.user_id)
        return TimeOffCategoryOut.model_validate(category)

    @staticmethod
    async def update_category(
        db: AsyncSession,
        category_id: int,
        data: TimeOffCategoryUpdate,
        identity: Identity,
    ) -> TimeOffCategoryOut:
        """Once requests reference a category only quota, active flag and notes change."""
        require_admin(identity)
        category = await TimeOffCategoryService.get(db, category_id)
        patch = data.model_dump(exclude_unset=True)
        if "title" in patch and patch["title"] is not None:
            patch["title"] = patch["title"].strip()

        frozen = {
            field: value
            for field, value in patch.items()
            if field in ("title", "is_paid")
            and value is not None
            and value != getattr(category, field)
        }
        if frozen and await TimeOffCategoryService.is_referenced(db, category_id):
            raise ValidationException({
                field: ["Cannot change this field while leave requests use the category."]
                for field in frozen
            })
        if patch.get("title"):
            await TimeOffCategoryService._ensure_unique_title(
                db, patch["title"], exclude_id=category_id,
            )

        old_values = {field: getattr(category, field) for field in patch}
        for field, value in patch.items():
            if value is None and field != "notes":
                continue
            setattr(category, field, value)
        category.updated_at = datetime.now(timezone.utc)
        await _flush_or_conflict(db)

        record_audit(
            db,
            action=AuditAction.update.value,
            entity_type=ENTITY_TIME_OFF_CATEGORY,
            entity_id=category.id,
            actor_id=identity.user_id,
            old_values=old_values,
            new_values=patch,
        )
        logger.info("Leave category %s updated by user %s", category.id, identity.user_id)
        return TimeOffCategoryOut.model_validate(category)

    @staticmethod
    async def delete_category(
        db: AsyncSession,
        category_id: int,
        identity: Identity,
    ) -> None:
        require_admin(identity)
        category = await TimeOffCategoryService.get(db, category_id)
        if await TimeOffCategoryService.is_referenced(db, category_id):
            raise InvalidStateException(
                "Cannot delete a leave category that has leave requests."
            )

        old_values = {"title": category.title, "annual_quota": category.annual_quota}
        await db.delete(category)
        await db.flush()

        record_audit(
            db,
            action=AuditAction.delete.value,
            entity_type=ENTITY_TIME_OFF_CATEGORY,
            entity_id=category_id,
            actor_id=identity.user_id,
            old_values=old_values,
        )
        logger.info("Leave category %s deleted by user %s", category_id, identity.user_id)
