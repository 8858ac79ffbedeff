"""Leave service layer — the leave-request state machine.

Business logic:
  - Apply: catalog validation, working-day computation, balance reservation
  - Decide: approve / reject with role + department gating, restore on reject
  - Cancel / admin delete: compensating balance restoration, exactly once
  - Edit pending requests with ledger adjustment by the working-day delta
  - Listings, pending approvals and administrative ledger maintenance

Balances are charged when a request is applied for. A request stays
charged while ``pending`` or ``approved``; rejection, cancellation and
administrative deletion each restore it once. Within a transition the
ledger restore precedes the terminal status write, which precedes any
dependent cleanup.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.audit import create_audit_entry
from leavedesk.common.constants import (
    CHARGED_STATUSES,
    DEFAULT_PAGE_SIZE,
    MAX_REQUEST_SPAN_DAYS,
    LeaveStatus,
    StaffRole,
)
from leavedesk.common.exceptions import (
    AlreadyProcessedError,
    AuthorizationError,
    IllegalStateError,
    NotFoundException,
    ValidationException,
)
from leavedesk.common.pagination import PaginatedResponse, PaginationParams, paginate
from leavedesk.common.retry import run_with_ledger_retry
from leavedesk.leave.approval import Actor, ApprovalRouter
from leavedesk.leave.ledger import BalanceLedger
from leavedesk.leave.models import LeaveApproval, LeaveBalance, LeaveRequest, LeaveType
from leavedesk.leave.repository import LeaveRepository, request_query
from leavedesk.leave.schemas import (
    ApplyResult,
    ApprovalOut,
    BalanceSummaryOut,
    BalanceSummaryRow,
    BulkAllocateResult,
    CancelRequest,
    DecisionRequest,
    DeleteResult,
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestUpdate,
    LeaveTypeBrief,
    LeaveTypeOut,
    StaffBrief,
    TransitionResult,
)
from leavedesk.leave.working_days import calendar_span, compute_working_days
from leavedesk.org.models import Staff

logger = logging.getLogger(__name__)

LIST_SCOPES = ("my", "department", "all")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: apply, decide, cancel, delete, edit, ledger admin."""

    # ─────────────────────────────────────────────────────────────────
    # Response builders
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _build_leave_type_brief(lt: Optional[LeaveType]) -> Optional[LeaveTypeBrief]:
        if lt is None:
            return None
        return LeaveTypeBrief(id=lt.id, code=lt.code, name=lt.name)

    @staticmethod
    def _build_staff_brief(staff: Optional[Staff]) -> Optional[StaffBrief]:
        if staff is None:
            return None
        return StaffBrief(
            id=staff.id,
            staff_code=staff.staff_code,
            full_name=staff.full_name,
            role=staff.role,
            department_id=staff.department_id,
        )

    @staticmethod
    def _build_balance_response(
        entry: LeaveBalance,
        leave_type: Optional[LeaveType] = None,
    ) -> LeaveBalanceOut:
        return LeaveBalanceOut(
            id=entry.id,
            staff_id=entry.staff_id,
            leave_type_id=entry.leave_type_id,
            year=entry.year,
            allocated=entry.allocated,
            used=entry.used,
            remaining=entry.remaining,
            leave_type=LeaveService._build_leave_type_brief(leave_type),
        )

    @staticmethod
    def _build_request_response(
        req: LeaveRequest,
        *,
        applicant: Optional[Staff] = None,
        leave_type: Optional[LeaveType] = None,
    ) -> LeaveRequestOut:
        """Build LeaveRequestOut from an ORM row whose relationships are loaded."""
        return LeaveRequestOut(
            id=req.id,
            applicant_id=req.applicant_id,
            leave_type_id=req.leave_type_id,
            start_date=req.start_date,
            end_date=req.end_date,
            is_start_half_day=bool(req.is_start_half_day),
            is_end_half_day=bool(req.is_end_half_day),
            total_days=req.total_days,
            working_days=req.working_days,
            reason=req.reason,
            status=req.status,
            applied_at=req.applied_at,
            processed_at=req.processed_at,
            cancelled_at=req.cancelled_at,
            cancel_reason=req.cancel_reason,
            applicant=LeaveService._build_staff_brief(applicant or req.applicant),
            leave_type=LeaveService._build_leave_type_brief(leave_type or req.leave_type),
            approvals=[ApprovalOut.model_validate(a) for a in req.approvals],
        )

    @staticmethod
    def _snapshot(req: LeaveRequest) -> dict:
        """JSON-safe state of a request for audit rows."""
        return {
            "status": req.status.value,
            "start_date": req.start_date.isoformat(),
            "end_date": req.end_date.isoformat(),
            "is_start_half_day": bool(req.is_start_half_day),
            "is_end_half_day": bool(req.is_end_half_day),
            "working_days": str(req.working_days),
        }

    # ─────────────────────────────────────────────────────────────────
    # Catalog rule checks (shared by apply and edit)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _validate_against_leave_type(
        leave_type: LeaveType,
        applicant: Staff,
        *,
        start_date: date,
        end_date: date,
        is_start_half_day: bool,
        is_end_half_day: bool,
    ) -> Decimal:
        """Apply the leave type's rules and return the working days."""
        if not leave_type.is_active:
            raise ValidationException(
                {"leave_type_id": [f"{leave_type.name} is not currently available."]}
            )

        if not leave_type.is_applicable_to(applicant.role):
            raise ValidationException(
                {"leave_type_id": [
                    f"{leave_type.name} is not applicable to the "
                    f"{applicant.role.value} role."
                ]}
            )

        if (is_start_half_day or is_end_half_day) and not leave_type.allow_half_day:
            raise ValidationException(
                {"half_day": [f"{leave_type.name} cannot be taken as a half day."]}
            )

        if start_date > end_date:
            raise ValidationException(
                {"dates": ["start_date must be on or before end_date."]}
            )
        if (end_date - start_date).days > MAX_REQUEST_SPAN_DAYS:
            raise ValidationException(
                {"dates": [
                    f"Leave request cannot span more than "
                    f"{MAX_REQUEST_SPAN_DAYS} days."
                ]}
            )

        working_days = compute_working_days(
            start_date, end_date, is_start_half_day, is_end_half_day,
        )
        if working_days <= 0:
            raise ValidationException(
                {"dates": ["No working days found in the selected range."]}
            )

        if leave_type.max_consecutive_days and working_days > leave_type.max_consecutive_days:
            raise ValidationException(
                {"dates": [
                    f"{leave_type.name} allows a maximum of "
                    f"{leave_type.max_consecutive_days} consecutive days."
                ]}
            )

        if leave_type.max_days_per_year and working_days > leave_type.max_days_per_year:
            raise ValidationException(
                {"dates": [
                    f"{leave_type.name} allows at most "
                    f"{leave_type.max_days_per_year} days per year."
                ]}
            )

        if leave_type.min_working_days and working_days < leave_type.min_working_days:
            raise ValidationException(
                {"dates": [
                    f"{leave_type.name} requires at least "
                    f"{leave_type.min_working_days} working days."
                ]}
            )

        return working_days

    # ─────────────────────────────────────────────────────────────────
    # Apply
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def apply_leave(
        db: AsyncSession,
        actor: Actor,
        data: LeaveRequestCreate,
        *,
        ip_address: Optional[str] = None,
    ) -> ApplyResult:
        """Validate, reserve the balance and persist a new request.

        Nothing is written when any validation or the reservation fails.
        """
        return await run_with_ledger_retry(
            db, LeaveService._apply, actor, data, ip_address=ip_address,
        )

    @staticmethod
    async def _apply(
        db: AsyncSession,
        actor: Actor,
        data: LeaveRequestCreate,
        *,
        ip_address: Optional[str] = None,
    ) -> ApplyResult:
        ApprovalRouter.authorize_apply(actor)

        applicant = await LeaveRepository.get_staff(db, actor.id)
        if not applicant.is_active:
            raise ValidationException({"applicant": ["Staff account is inactive."]})

        leave_type = await LeaveRepository.get_leave_type(db, data.leave_type_id)
        working_days = LeaveService._validate_against_leave_type(
            leave_type,
            applicant,
            start_date=data.start_date,
            end_date=data.end_date,
            is_start_half_day=data.is_start_half_day,
            is_end_half_day=data.is_end_half_day,
        )

        if await LeaveRepository.has_overlap(
            db, applicant.id, data.start_date, data.end_date,
        ):
            raise ValidationException(
                {"dates": [
                    "You already have a pending or approved leave request "
                    "overlapping with these dates."
                ]}
            )

        # ── Charge the ledger ───────────────────────────────────────
        year = data.start_date.year
        balance = await BalanceLedger.reserve(
            db,
            applicant.id,
            leave_type.id,
            year,
            working_days,
            leave_type_name=leave_type.name,
        )

        now = _utcnow()
        initial_status = LeaveStatus.pending
        if not leave_type.requires_approval:
            initial_status = LeaveStatus.approved

        leave_request = LeaveRequest(
            applicant_id=applicant.id,
            leave_type_id=leave_type.id,
            start_date=data.start_date,
            end_date=data.end_date,
            is_start_half_day=data.is_start_half_day,
            is_end_half_day=data.is_end_half_day,
            total_days=calendar_span(data.start_date, data.end_date),
            working_days=working_days,
            reason=data.reason,
            status=initial_status,
            applied_at=now,
            processed_at=now if initial_status == LeaveStatus.approved else None,
            applicant=applicant,
            leave_type=leave_type,
            approvals=[],
        )
        await LeaveRepository.add_request(db, leave_request)

        await create_audit_entry(
            db,
            action="apply",
            entity_type="leave_request",
            entity_id=leave_request.id,
            actor_id=actor.id,
            new_values={
                "leave_type": leave_type.code,
                **LeaveService._snapshot(leave_request),
                "remaining": str(balance.remaining),
            },
            ip_address=ip_address,
        )

        logger.info(
            "Leave applied request=%s applicant=%s type=%s days=%s status=%s",
            leave_request.id, applicant.id, leave_type.code,
            working_days, initial_status.value,
        )

        return ApplyResult(
            request_id=leave_request.id,
            status=leave_request.status,
            working_days=working_days,
            updated_balance=LeaveService._build_balance_response(balance, leave_type),
            request=LeaveService._build_request_response(leave_request),
        )

    # ─────────────────────────────────────────────────────────────────
    # Decide (approve / reject)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def decide_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
        data: DecisionRequest,
        *,
        ip_address: Optional[str] = None,
    ) -> TransitionResult:
        """Record an approver's decision on a pending request."""
        return await run_with_ledger_retry(
            db, LeaveService._decide, request_id, actor, data,
            ip_address=ip_address,
        )

    @staticmethod
    async def _decide(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
        data: DecisionRequest,
        *,
        ip_address: Optional[str] = None,
    ) -> TransitionResult:
        leave_request = await LeaveRepository.get_request(
            db, request_id, for_update=True,
        )
        if leave_request.status != LeaveStatus.pending:
            raise AlreadyProcessedError(leave_request.id, leave_request.status.value)

        level = ApprovalRouter.authorize_decision(actor, leave_request.applicant)
        decision, new_status = ApprovalRouter.outcome(data.decision)
        old_values = LeaveService._snapshot(leave_request)
        now = _utcnow()

        balance: Optional[LeaveBalance] = None
        if new_status == LeaveStatus.rejected:
            balance = await BalanceLedger.restore(
                db,
                leave_request.applicant_id,
                leave_request.leave_type_id,
                leave_request.ledger_year,
                leave_request.working_days,
            )

        leave_request.approvals.append(
            LeaveApproval(
                position=len(leave_request.approvals),
                approver_id=actor.id,
                approver_role=actor.role,
                decision=decision,
                comments=data.comments,
                decided_at=now,
                level=level,
            )
        )
        leave_request.status = new_status
        leave_request.processed_at = now
        await db.flush()

        if balance is None:
            balance = await BalanceLedger.get_entry(
                db,
                leave_request.applicant_id,
                leave_request.leave_type_id,
                leave_request.ledger_year,
            )

        await create_audit_entry(
            db,
            action=decision.value,
            entity_type="leave_request",
            entity_id=leave_request.id,
            actor_id=actor.id,
            old_values=old_values,
            new_values={
                "status": new_status.value,
                "level": level,
                "comments": data.comments,
            },
            ip_address=ip_address,
        )

        logger.info(
            "Leave %s request=%s actor=%s level=%d days=%s",
            new_status.value, leave_request.id, actor.id, level,
            leave_request.working_days,
        )

        return TransitionResult(
            request_id=leave_request.id,
            status=leave_request.status,
            working_days=leave_request.working_days,
            balance=(
                LeaveService._build_balance_response(balance, leave_request.leave_type)
                if balance is not None else None
            ),
        )

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
        data: Optional[CancelRequest] = None,
        *,
        ip_address: Optional[str] = None,
    ) -> TransitionResult:
        """Cancel a pending or approved request and give its days back."""
        return await run_with_ledger_retry(
            db, LeaveService._cancel, request_id, actor, data or CancelRequest(),
            ip_address=ip_address,
        )

    @staticmethod
    async def _cancel(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
        data: CancelRequest,
        *,
        ip_address: Optional[str] = None,
    ) -> TransitionResult:
        leave_request = await LeaveRepository.get_request(
            db, request_id, for_update=True,
        )
        ApprovalRouter.authorize_cancel(actor, leave_request.applicant)

        if leave_request.status == LeaveStatus.cancelled:
            raise AlreadyProcessedError(leave_request.id, leave_request.status.value)
        if leave_request.status not in CHARGED_STATUSES:
            raise IllegalStateError(
                f"Cannot cancel a leave request with status "
                f"'{leave_request.status.value}'."
            )

        old_values = LeaveService._snapshot(leave_request)

        balance = await BalanceLedger.restore(
            db,
            leave_request.applicant_id,
            leave_request.leave_type_id,
            leave_request.ledger_year,
            leave_request.working_days,
        )

        leave_request.status = LeaveStatus.cancelled
        leave_request.cancelled_at = _utcnow()
        leave_request.cancel_reason = data.reason
        await db.flush()

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_request",
            entity_id=leave_request.id,
            actor_id=actor.id,
            old_values=old_values,
            new_values={"status": "cancelled", "cancel_reason": data.reason},
            ip_address=ip_address,
        )

        logger.info(
            "Leave cancelled request=%s actor=%s days=%s previous=%s",
            leave_request.id, actor.id, leave_request.working_days,
            old_values["status"],
        )

        return TransitionResult(
            request_id=leave_request.id,
            status=leave_request.status,
            working_days=leave_request.working_days,
            balance=(
                LeaveService._build_balance_response(balance, leave_request.leave_type)
                if balance is not None else None
            ),
        )

    # ─────────────────────────────────────────────────────────────────
    # Administrative delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def delete_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
        *,
        ip_address: Optional[str] = None,
    ) -> DeleteResult:
        """Permanently remove a request, restoring its days if still charged."""
        return await run_with_ledger_retry(
            db, LeaveService._delete, request_id, actor, ip_address=ip_address,
        )

    @staticmethod
    async def _delete(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
        *,
        ip_address: Optional[str] = None,
    ) -> DeleteResult:
        ApprovalRouter.authorize_delete(actor)

        try:
            leave_request = await LeaveRepository.get_request(
                db, request_id, for_update=True,
            )
        except NotFoundException:
            if await LeaveRepository.was_deleted(db, request_id):
                raise AlreadyProcessedError(request_id, "deleted")
            raise
        old_values = LeaveService._snapshot(leave_request)

        restored = Decimal("0")
        if leave_request.status in CHARGED_STATUSES:
            await BalanceLedger.restore(
                db,
                leave_request.applicant_id,
                leave_request.leave_type_id,
                leave_request.ledger_year,
                leave_request.working_days,
            )
            restored = leave_request.working_days

        await create_audit_entry(
            db,
            action="delete",
            entity_type="leave_request",
            entity_id=leave_request.id,
            actor_id=actor.id,
            old_values={
                **old_values,
                "applicant_id": str(leave_request.applicant_id),
                "leave_type_id": str(leave_request.leave_type_id),
            },
            new_values={"restored_days": str(restored)},
            ip_address=ip_address,
        )

        await LeaveRepository.delete_request(db, leave_request)

        logger.info(
            "Leave deleted request=%s actor=%s status=%s restored=%s",
            request_id, actor.id, old_values["status"], restored,
        )
        return DeleteResult(request_id=request_id, deleted=True, restored_days=restored)

    # ─────────────────────────────────────────────────────────────────
    # Edit pending request
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
        data: LeaveRequestUpdate,
        *,
        ip_address: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Edit a pending request; the ledger moves by the working-day delta."""
        return await run_with_ledger_retry(
            db, LeaveService._update, request_id, actor, data,
            ip_address=ip_address,
        )

    @staticmethod
    async def _update(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
        data: LeaveRequestUpdate,
        *,
        ip_address: Optional[str] = None,
    ) -> LeaveRequestOut:
        leave_request = await LeaveRepository.get_request(
            db, request_id, for_update=True,
        )
        ApprovalRouter.authorize_edit(actor, leave_request.applicant)

        if leave_request.status != LeaveStatus.pending:
            raise IllegalStateError(
                f"Only pending leave requests can be edited; this one is "
                f"'{leave_request.status.value}'."
            )

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        start_date = changes.get("start_date", leave_request.start_date)
        end_date = changes.get("end_date", leave_request.end_date)
        is_start_half_day = changes.get("is_start_half_day", leave_request.is_start_half_day)
        is_end_half_day = changes.get("is_end_half_day", leave_request.is_end_half_day)

        leave_type = leave_request.leave_type
        new_days = LeaveService._validate_against_leave_type(
            leave_type,
            leave_request.applicant,
            start_date=start_date,
            end_date=end_date,
            is_start_half_day=bool(is_start_half_day),
            is_end_half_day=bool(is_end_half_day),
        )

        if await LeaveRepository.has_overlap(
            db, leave_request.applicant_id, start_date, end_date,
            exclude_id=leave_request.id,
        ):
            raise ValidationException(
                {"dates": [
                    "You already have a pending or approved leave request "
                    "overlapping with these dates."
                ]}
            )

        old_values = LeaveService._snapshot(leave_request)
        old_days = leave_request.working_days
        old_year = leave_request.ledger_year
        new_year = start_date.year
        applicant_id = leave_request.applicant_id

        # Reserve before restoring so a failed reservation leaves nothing behind.
        if new_year != old_year:
            await BalanceLedger.reserve(
                db, applicant_id, leave_type.id, new_year, new_days,
                leave_type_name=leave_type.name,
            )
            await BalanceLedger.restore(
                db, applicant_id, leave_type.id, old_year, old_days,
            )
        elif new_days > old_days:
            await BalanceLedger.reserve(
                db, applicant_id, leave_type.id, new_year, new_days - old_days,
                leave_type_name=leave_type.name,
            )
        elif new_days < old_days:
            await BalanceLedger.restore(
                db, applicant_id, leave_type.id, new_year, old_days - new_days,
            )

        leave_request.start_date = start_date
        leave_request.end_date = end_date
        leave_request.is_start_half_day = bool(is_start_half_day)
        leave_request.is_end_half_day = bool(is_end_half_day)
        leave_request.total_days = calendar_span(start_date, end_date)
        leave_request.working_days = new_days
        if "reason" in changes:
            leave_request.reason = changes["reason"]
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="leave_request",
            entity_id=leave_request.id,
            actor_id=actor.id,
            old_values=old_values,
            new_values=LeaveService._snapshot(leave_request),
            ip_address=ip_address,
        )

        logger.info(
            "Leave edited request=%s actor=%s days %s -> %s",
            leave_request.id, actor.id, old_days, new_days,
        )
        return LeaveService._build_request_response(leave_request)

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
    ) -> LeaveRequestOut:
        leave_request = await LeaveRepository.get_request(db, request_id)
        ApprovalRouter.authorize_view(actor, leave_request.applicant)
        return LeaveService._build_request_response(leave_request)

    @staticmethod
    async def list_leave_requests(
        db: AsyncSession,
        actor: Actor,
        *,
        scope: str = "my",
        status: Optional[LeaveStatus] = None,
        leave_type_id: Optional[uuid.UUID] = None,
        staff_id: Optional[uuid.UUID] = None,
        department_id: Optional[uuid.UUID] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        params: Optional[PaginationParams] = None,
    ) -> PaginatedResponse[LeaveRequestOut]:
        """List leave requests with pagination and filters.

        Scopes:
          - my: own requests only
          - department: requests of one department (hod: own department)
          - all: every request (principal and admin only)
        """
        if scope not in LIST_SCOPES:
            raise ValidationException(
                {"scope": [f"Scope must be one of: {', '.join(LIST_SCOPES)}."]}
            )
        if params is None:
            params = PaginationParams(page=1, page_size=DEFAULT_PAGE_SIZE, sort=None)

        query = request_query().order_by(LeaveRequest.applied_at.desc())

        if scope == "my":
            query = query.where(LeaveRequest.applicant_id == actor.id)
        elif scope == "department":
            if actor.role == StaffRole.hod:
                department_id = actor.department_id
            elif actor.role not in (StaffRole.principal, StaffRole.admin):
                raise AuthorizationError("You cannot view department leave requests.")
            department_id = department_id or actor.department_id
            if department_id is None:
                raise ValidationException(
                    {"department_id": ["A department is required for this scope."]}
                )
            query = query.join(Staff, LeaveRequest.applicant_id == Staff.id).where(
                Staff.department_id == department_id
            )
        elif actor.role not in (StaffRole.principal, StaffRole.admin):
            raise AuthorizationError("You cannot view all leave requests.")

        if staff_id:
            query = query.where(LeaveRequest.applicant_id == staff_id)
        if status:
            query = query.where(LeaveRequest.status == status)
        if leave_type_id:
            query = query.where(LeaveRequest.leave_type_id == leave_type_id)
        if from_date:
            query = query.where(LeaveRequest.end_date >= from_date)
        if to_date:
            query = query.where(LeaveRequest.start_date <= to_date)

        rows, meta = await paginate(db, query, params, model=LeaveRequest)
        return PaginatedResponse[LeaveRequestOut](
            data=[LeaveService._build_request_response(r) for r in rows],
            meta=meta,
        )

    @staticmethod
    async def get_pending_approvals(
        db: AsyncSession,
        actor: Actor,
    ) -> list[LeaveRequestOut]:
        """Pending requests this actor is allowed to decide, oldest first."""
        result = await db.execute(
            request_query()
            .join(Staff, LeaveRequest.applicant_id == Staff.id)
            .where(
                LeaveRequest.status == LeaveStatus.pending,
                ApprovalRouter.decidable_clause(actor),
            )
            .order_by(LeaveRequest.applied_at.asc())
        )
        return [
            LeaveService._build_request_response(r)
            for r in result.scalars().all()
        ]

    @staticmethod
    async def get_leave_types(
        db: AsyncSession,
        actor: Actor,
    ) -> list[LeaveTypeOut]:
        """Active leave types; non-admins only see those open to their role."""
        result = await db.execute(
            select(LeaveType)
            .where(LeaveType.is_active.is_(True))
            .order_by(LeaveType.name)
        )
        return [
            LeaveTypeOut.model_validate(lt)
            for lt in result.scalars().all()
            if actor.is_admin or lt.is_applicable_to(actor.role)
        ]

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        actor: Actor,
        *,
        staff_id: Optional[uuid.UUID] = None,
        year: Optional[int] = None,
    ) -> list[LeaveBalanceOut]:
        """Ledger entries of one staff member for one year."""
        staff_id = staff_id or actor.id
        year = year or _utcnow().year
        if staff_id != actor.id:
            staff = await LeaveRepository.get_staff(db, staff_id)
            ApprovalRouter.authorize_view(actor, staff)

        entries = await BalanceLedger.list_entries(db, staff_id, year)
        return [
            LeaveService._build_balance_response(e, e.leave_type)
            for e in entries
        ]

    # ─────────────────────────────────────────────────────────────────
    # Ledger maintenance (admin)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _require_admin(actor: Actor) -> None:
        if not actor.is_admin:
            raise AuthorizationError("Only administrators can manage leave balances.")

    @staticmethod
    async def allocate_balance(
        db: AsyncSession,
        actor: Actor,
        staff_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        amount: Decimal,
    ) -> LeaveBalanceOut:
        """Grant ``amount`` days of a leave type to one staff member."""
        return await run_with_ledger_retry(
            db, LeaveService._allocate, actor, staff_id, leave_type_id, year, amount,
        )

    @staticmethod
    async def _allocate(
        db: AsyncSession,
        actor: Actor,
        staff_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        amount: Decimal,
    ) -> LeaveBalanceOut:
        LeaveService._require_admin(actor)

        staff = await LeaveRepository.get_staff(db, staff_id)
        if staff.role == StaffRole.admin:
            raise ValidationException(
                {"staff_id": ["Administrators do not hold leave balances."]}
            )
        leave_type = await LeaveRepository.get_leave_type(db, leave_type_id)

        previous = await BalanceLedger.get_entry(db, staff_id, leave_type_id, year)
        old_allocated = str(previous.allocated) if previous is not None else None

        entry, created = await BalanceLedger.allocate(
            db, staff_id, leave_type_id, year, amount,
        )

        await create_audit_entry(
            db,
            action="allocate",
            entity_type="leave_balance",
            entity_id=entry.id,
            actor_id=actor.id,
            old_values={"allocated": old_allocated} if not created else None,
            new_values={
                "staff_id": str(staff_id),
                "leave_type": leave_type.code,
                "year": year,
                "allocated": str(entry.allocated),
                "remaining": str(entry.remaining),
            },
        )
        logger.info(
            "Balance allocated staff=%s type=%s year=%s amount=%s created=%s",
            staff_id, leave_type.code, year, amount, created,
        )
        return LeaveService._build_balance_response(entry, leave_type)

    @staticmethod
    async def bulk_allocate(
        db: AsyncSession,
        actor: Actor,
        year: int,
    ) -> BulkAllocateResult:
        """Give every active non-admin staff member each applicable leave type's
        default allocation for *year*."""
        return await run_with_ledger_retry(db, LeaveService._bulk_allocate, actor, year)

    @staticmethod
    async def _bulk_allocate(
        db: AsyncSession,
        actor: Actor,
        year: int,
    ) -> BulkAllocateResult:
        LeaveService._require_admin(actor)

        staff_rows: Sequence[Staff] = (
            await db.execute(
                select(Staff).where(
                    Staff.is_active.is_(True),
                    Staff.role != StaffRole.admin,
                )
            )
        ).scalars().all()
        leave_types: Sequence[LeaveType] = (
            await db.execute(
                select(LeaveType).where(
                    LeaveType.is_active.is_(True),
                    LeaveType.default_allocation > 0,
                )
            )
        ).scalars().all()

        created = updated = unchanged = 0
        for staff in staff_rows:
            for lt in leave_types:
                if not lt.is_applicable_to(staff.role):
                    continue
                existing = await BalanceLedger.get_entry(db, staff.id, lt.id, year)
                if existing is not None and existing.allocated == lt.default_allocation:
                    unchanged += 1
                    continue
                _, was_created = await BalanceLedger.allocate(
                    db, staff.id, lt.id, year, lt.default_allocation,
                )
                if was_created:
                    created += 1
                else:
                    updated += 1

        await create_audit_entry(
            db,
            action="bulk_allocate",
            entity_type="leave_balance",
            entity_id=actor.id,
            actor_id=actor.id,
            new_values={
                "year": year,
                "created": created,
                "updated": updated,
                "unchanged": unchanged,
            },
        )
        logger.info(
            "Bulk allocation year=%s staff=%d created=%d updated=%d unchanged=%d",
            year, len(staff_rows), created, updated, unchanged,
        )
        return BulkAllocateResult(
            year=year,
            staff_count=len(staff_rows),
            created=created,
            updated=updated,
            unchanged=unchanged,
        )

    @staticmethod
    async def reset_balances(
        db: AsyncSession,
        actor: Actor,
        staff_id: uuid.UUID,
        year: int,
    ) -> list[LeaveBalanceOut]:
        """Zero the usage of every entry of a staff member for *year*."""
        return await run_with_ledger_retry(
            db, LeaveService._reset, actor, staff_id, year,
        )

    @staticmethod
    async def _reset(
        db: AsyncSession,
        actor: Actor,
        staff_id: uuid.UUID,
        year: int,
    ) -> list[LeaveBalanceOut]:
        LeaveService._require_admin(actor)
        await LeaveRepository.get_staff(db, staff_id)

        entries = await BalanceLedger.reset_year(db, staff_id, year)

        await create_audit_entry(
            db,
            action="reset",
            entity_type="leave_balance",
            entity_id=staff_id,
            actor_id=actor.id,
            new_values={"year": year, "entries": len(entries)},
        )
        logger.info(
            "Balances reset staff=%s year=%s entries=%d",
            staff_id, year, len(entries),
        )
        return [
            LeaveService._build_balance_response(e, e.leave_type)
            for e in entries
        ]

    @staticmethod
    async def balance_summary(
        db: AsyncSession,
        actor: Actor,
        year: int,
        *,
        department_id: Optional[uuid.UUID] = None,
    ) -> BalanceSummaryOut:
        """Per-leave-type totals across staff for one year."""
        if actor.role not in (StaffRole.admin, StaffRole.principal):
            raise AuthorizationError("You cannot view the balance summary.")

        query = (
            select(
                LeaveType.id,
                LeaveType.code,
                LeaveType.name,
                func.count(LeaveBalance.id),
                func.coalesce(func.sum(LeaveBalance.allocated), 0),
                func.coalesce(func.sum(LeaveBalance.used), 0),
                func.coalesce(func.sum(LeaveBalance.remaining), 0),
            )
            .join(LeaveBalance, LeaveBalance.leave_type_id == LeaveType.id)
            .where(LeaveBalance.year == year)
            .group_by(LeaveType.id, LeaveType.code, LeaveType.name)
            .order_by(LeaveType.code)
        )
        if department_id is not None:
            query = query.join(Staff, LeaveBalance.staff_id == Staff.id).where(
                Staff.department_id == department_id
            )

        rows = (await db.execute(query)).all()
        return BalanceSummaryOut(
            year=year,
            department_id=department_id,
            rows=[
                BalanceSummaryRow(
                    leave_type_id=r[0],
                    leave_type_code=r[1],
                    leave_type_name=r[2],
                    staff_count=r[3],
                    total_allocated=Decimal(str(r[4])),
                    total_used=Decimal(str(r[5])),
                    total_remaining=Decimal(str(r[6])),
                )
                for r in rows
            ],
        )
