"""Common module — shared utilities for leavedesk."""

from leavedesk.common.audit import AuditTrail, create_audit_entry
from leavedesk.common.constants import (
    APPROVAL_LEVELS,
    CHARGED_STATUSES,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    MAX_REQUEST_SPAN_DAYS,
    ApprovalDecision,
    DecisionAction,
    LeaveStatus,
    StaffRole,
)
from leavedesk.common.exceptions import (
    AlreadyProcessedError,
    AppException,
    AuthorizationError,
    ForbiddenException,
    IllegalStateError,
    InsufficientBalanceError,
    LedgerConflictError,
    NoAllocationError,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from leavedesk.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "ApprovalDecision",
    "DecisionAction",
    "LeaveStatus",
    "StaffRole",
    "APPROVAL_LEVELS",
    "CHARGED_STATUSES",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "MAX_REQUEST_SPAN_DAYS",
    # Exceptions
    "AlreadyProcessedError",
    "AppException",
    "AuthorizationError",
    "ForbiddenException",
    "IllegalStateError",
    "InsufficientBalanceError",
    "LedgerConflictError",
    "NoAllocationError",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
