"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update / *Request  → request bodies (write)
  - *Out / *Result                → response bodies (read)
  - *Brief                        → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leavedesk.common.constants import (
    ApprovalDecision,
    DecisionAction,
    LeaveStatus,
    StaffRole,
)
from leavedesk.config import settings


def _bounded_text(value: Optional[str], field: str, *, required: bool) -> Optional[str]:
    if value is None:
        if required:
            raise ValueError(f"{field} is required.")
        return None
    value = value.strip()
    if required and not value:
        raise ValueError(f"{field} must not be empty.")
    if len(value) > settings.MAX_REASON_LENGTH:
        raise ValueError(
            f"{field} must be at most {settings.MAX_REASON_LENGTH} characters."
        )
    return value or None


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class StaffBrief(BaseModel):
    """Minimal staff info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    staff_code: str
    full_name: str
    role: StaffRole
    department_id: Optional[uuid.UUID] = None


class LeaveTypeBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    name: str


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeOut(BaseModel):
    """Read-only view of a leave type's rules."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    name: str
    description: Optional[str] = None
    max_days_per_year: Decimal
    default_allocation: Decimal = Decimal("0")
    allow_half_day: bool = True
    requires_approval: bool = True
    applicable_roles: list[StaffRole] = Field(default_factory=list)
    max_consecutive_days: Optional[int] = None
    min_working_days: Optional[Decimal] = None
    is_active: bool = True


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """One ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    staff_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    allocated: Decimal
    used: Decimal
    remaining: Decimal

    leave_type: Optional[LeaveTypeBrief] = None


class AllocateRequest(BaseModel):
    """Administrative grant for one (staff, leave type, year) key."""

    staff_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int = Field(..., ge=2000, le=2100)
    amount: Decimal = Field(..., ge=0, le=366, decimal_places=1)


class BulkAllocateRequest(BaseModel):
    year: int = Field(..., ge=2000, le=2100)


class BulkAllocateResult(BaseModel):
    year: int
    staff_count: int
    created: int
    updated: int
    unchanged: int


class ResetBalancesRequest(BaseModel):
    staff_id: uuid.UUID
    year: int = Field(..., ge=2000, le=2100)


class BalanceSummaryRow(BaseModel):
    """Per-leave-type aggregate across staff for one year."""

    leave_type_id: uuid.UUID
    leave_type_code: str
    leave_type_name: str
    staff_count: int
    total_allocated: Decimal
    total_used: Decimal
    total_remaining: Decimal


class BalanceSummaryOut(BaseModel):
    year: int
    department_id: Optional[uuid.UUID] = None
    rows: list[BalanceSummaryRow]


# ═════════════════════════════════════════════════════════════════════
# Leave Request: write
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for applying a leave request."""

    leave_type_id: uuid.UUID
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    is_start_half_day: bool = False
    is_end_half_day: bool = False
    reason: str = Field(..., description="Reason for leave")

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        return _bounded_text(v, "reason", required=True)

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        return self


class LeaveRequestUpdate(BaseModel):
    """Edit of a pending request. Omitted fields keep their current value."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_start_half_day: Optional[bool] = None
    is_end_half_day: Optional[bool] = None
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return _bounded_text(v, "reason", required=True)


class DecisionRequest(BaseModel):
    decision: DecisionAction
    comments: Optional[str] = None

    @field_validator("comments")
    @classmethod
    def validate_comments(cls, v: Optional[str]) -> Optional[str]:
        return _bounded_text(v, "comments", required=False)


class CancelRequest(BaseModel):
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: Optional[str]) -> Optional[str]:
        return _bounded_text(v, "reason", required=False)


# ═════════════════════════════════════════════════════════════════════
# Leave Request: read
# ═════════════════════════════════════════════════════════════════════


class ApprovalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    approver_id: uuid.UUID
    approver_role: StaffRole
    decision: ApprovalDecision
    comments: Optional[str] = None
    decided_at: Optional[datetime] = None
    level: int


class LeaveRequestOut(BaseModel):
    """Full leave request with approval trail."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    applicant_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    is_start_half_day: bool
    is_end_half_day: bool
    total_days: int
    working_days: Decimal
    reason: str
    status: LeaveStatus
    applied_at: datetime
    processed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None

    applicant: Optional[StaffBrief] = None
    leave_type: Optional[LeaveTypeBrief] = None
    approvals: list[ApprovalOut] = Field(default_factory=list)


class ApplyResult(BaseModel):
    """Outcome of ``apply``: the new request and the charged ledger entry."""

    request_id: uuid.UUID
    status: LeaveStatus
    working_days: Decimal
    updated_balance: LeaveBalanceOut
    request: LeaveRequestOut


class TransitionResult(BaseModel):
    """Outcome of decide / cancel / edit."""

    request_id: uuid.UUID
    status: LeaveStatus
    working_days: Decimal
    balance: Optional[LeaveBalanceOut] = None


class DeleteResult(BaseModel):
    request_id: uuid.UUID
    deleted: bool = True
    restored_days: Decimal = Decimal("0")
