"""Leave ORM models: LeaveType, LeaveBalance, LeaveRequest, LeaveApproval."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavedesk.common.constants import ApprovalDecision, LeaveStatus, StaffRole
from leavedesk.database import Base

if TYPE_CHECKING:
    from leavedesk.org.models import Staff


class LeaveType(Base):
    """Leave-type configuration, owned by the catalog service (read-only here)."""

    __tablename__ = "leave_types"
    __table_args__ = (
        sa.CheckConstraint("max_days_per_year >= 0", name="ck_leave_type_max_days"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    code: Mapped[str] = mapped_column(sa.String(10), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    max_days_per_year: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0"),
    )
    default_allocation: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), default=Decimal("0"), server_default=sa.text("0"),
    )
    allow_half_day: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE"),
    )
    requires_approval: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE"),
    )
    # Empty list → applicable to every role
    applicable_roles: Mapped[list] = mapped_column(JSONB, default=list, nullable=False)
    max_consecutive_days: Mapped[Optional[int]] = mapped_column(sa.Integer)
    min_working_days: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(6, 1))
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    balances: Mapped[list[LeaveBalance]] = relationship(back_populates="leave_type")
    requests: Mapped[list[LeaveRequest]] = relationship(back_populates="leave_type")

    def is_applicable_to(self, role: StaffRole) -> bool:
        roles = self.applicable_roles or []
        return not roles or role.value in roles


class LeaveBalance(Base):
    """One ledger entry: allocation / usage / remaining per (staff, type, year)."""

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "staff_id", "leave_type_id", "year", name="uq_leave_balance"
        ),
        sa.CheckConstraint("allocated >= 0", name="ck_leave_balance_allocated"),
        sa.CheckConstraint("used >= 0", name="ck_leave_balance_used"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    staff_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("staff.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    allocated: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0"),
    )
    used: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0"),
    )
    # Maintained by BalanceLedger: max(0, allocated - used)
    remaining: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0"),
    )
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    staff: Mapped[Staff] = relationship(
        back_populates="leave_balances"
    )
    leave_type: Mapped[LeaveType] = relationship(back_populates="balances")


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("start_date <= end_date", name="ck_leave_request_dates"),
        sa.Index("ix_leave_requests_applicant_start", "applicant_id", "start_date"),
        sa.Index("ix_leave_requests_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    applicant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("staff.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    is_start_half_day: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    is_end_half_day: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    total_days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    working_days: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        default=LeaveStatus.pending,
        server_default="pending",
    )
    applied_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    cancel_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    applicant: Mapped[Staff] = relationship(
        back_populates="leave_requests", foreign_keys=[applicant_id]
    )
    leave_type: Mapped[LeaveType] = relationship(back_populates="requests")
    approvals: Mapped[list[LeaveApproval]] = relationship(
        back_populates="leave_request",
        order_by="LeaveApproval.position",
        cascade="all, delete-orphan",
    )

    @property
    def ledger_year(self) -> int:
        return self.start_date.year


class LeaveApproval(Base):
    """Append-only approval trail entry of a leave request."""

    __tablename__ = "leave_approvals"
    __table_args__ = (
        sa.UniqueConstraint(
            "leave_request_id", "position", name="uq_leave_approval_position"
        ),
        sa.Index("ix_leave_approvals_approver", "approver_id", "decision"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    leave_request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    approver_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("staff.id"), nullable=False
    )
    approver_role: Mapped[StaffRole] = mapped_column(
        sa.Enum(StaffRole, name="staff_role"), nullable=False
    )
    decision: Mapped[ApprovalDecision] = mapped_column(
        sa.Enum(ApprovalDecision, name="approval_decision"),
        default=ApprovalDecision.pending,
    )
    comments: Mapped[Optional[str]] = mapped_column(sa.Text)
    decided_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    level: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    # Relationships
    leave_request: Mapped[LeaveRequest] = relationship(back_populates="approvals")
    approver: Mapped[Staff] = relationship(
        foreign_keys=[approver_id]
    )
