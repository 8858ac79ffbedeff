"""Enums and constants for leavedesk — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Staff / Roles ───────────────────────────────────────────────────

class StaffRole(str, enum.Enum):
    faculty = "faculty"
    hod = "hod"
    principal = "principal"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class ApprovalDecision(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class DecisionAction(str, enum.Enum):
    """Verb posted by an approver; maps onto ApprovalDecision."""

    approve = "approve"
    reject = "reject"


# Statuses whose working days are currently counted in LeaveBalance.used.
CHARGED_STATUSES: frozenset[LeaveStatus] = frozenset(
    {LeaveStatus.pending, LeaveStatus.approved}
)


# Approval tiers: department approver, then top-level approver.
APPROVAL_LEVELS: dict[StaffRole, int] = {
    StaffRole.hod: 1,
    StaffRole.principal: 2,
}

# ── Misc constants ──────────────────────────────────────────────────

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50

# Longest calendar span a single leave request may cover.
MAX_REQUEST_SPAN_DAYS = 365
