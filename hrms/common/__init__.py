"""Common module — shared utilities for the leave engine."""

from hrms.common.audit import (
    AuditEvent,
    AuditSink,
    AuditTrail,
    audit_sink,
    pending_audit,
    record_audit,
)
from hrms.common.constants import (
    DEFAULT_PAGE_SIZE,
    LIVE_STATUSES,
    MAX_PAGE_SIZE,
    TRANSITIONS,
    ApprovalStatus,
    AuditAction,
    LeaveAction,
)
from hrms.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    OverlapException,
    ValidationException,
    register_exception_handlers,
)
from hrms.common.filters import apply_filters, apply_search, apply_sorting
from hrms.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditEvent",
    "AuditSink",
    "AuditTrail",
    "audit_sink",
    "pending_audit",
    "record_audit",
    # Constants / Enums
    "ApprovalStatus",
    "AuditAction",
    "LeaveAction",
    "LIVE_STATUSES",
    "TRANSITIONS",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "InvalidStateException",
    "NotFoundException",
    "OverlapException",
    "ValidationException",
    "register_exception_handlers",
    # Filters
    "apply_filters",
    "apply_search",
    "apply_sorting",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
