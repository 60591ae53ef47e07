"""Enums and constants for the leave engine."""

from __future__ import annotations

import enum


# ── Leave ───────────────────────────────────────────────────────────

class ApprovalStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    declined = "declined"
    cancelled = "cancelled"


class LeaveAction(str, enum.Enum):
    approve = "approve"
    decline = "decline"
    cancel = "cancel"


# Statuses that block overlapping requests for the same staff member
LIVE_STATUSES: frozenset[ApprovalStatus] = frozenset(
    {ApprovalStatus.pending, ApprovalStatus.approved}
)

# Statuses that carry an approver and a decision timestamp
DECIDED_STATUSES: frozenset[ApprovalStatus] = frozenset(
    {ApprovalStatus.approved, ApprovalStatus.declined}
)

# (current status, action) → next status. Anything absent is refused.
TRANSITIONS: dict[tuple[ApprovalStatus, LeaveAction], ApprovalStatus] = {
    (ApprovalStatus.pending, LeaveAction.approve): ApprovalStatus.approved,
    (ApprovalStatus.pending, LeaveAction.decline): ApprovalStatus.declined,
    (ApprovalStatus.pending, LeaveAction.cancel): ApprovalStatus.cancelled,
    (ApprovalStatus.approved, LeaveAction.cancel): ApprovalStatus.cancelled,
}


# ── Audit ───────────────────────────────────────────────────────────

class AuditAction(str, enum.Enum):
    create = "create"
    update = "update"
    delete = "delete"
    approve = "approve"
    decline = "decline"
    cancel = "cancel"


ENTITY_TIME_OFF_REQUEST = "time_off_request"
ENTITY_TIME_OFF_CATEGORY = "time_off_category"


# ── Misc constants ──────────────────────────────────────────────────

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 15
