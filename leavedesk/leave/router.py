"""Leave router — apply, decide, cancel, edit, delete, balances.

All endpoints require a bearer token. Ledger maintenance endpoints are
admin-only; the balance summary is open to principals as well.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import get_current_actor, require_role
from leavedesk.common.constants import LeaveStatus, StaffRole
from leavedesk.common.pagination import PaginatedResponse, PaginationParams
from leavedesk.database import get_db
from leavedesk.leave.approval import Actor
from leavedesk.leave.schemas import (
    AllocateRequest,
    ApplyResult,
    BalanceSummaryOut,
    BulkAllocateRequest,
    BulkAllocateResult,
    CancelRequest,
    DecisionRequest,
    DeleteResult,
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestUpdate,
    LeaveTypeOut,
    ResetBalancesRequest,
    TransitionResult,
)
from leavedesk.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=ApplyResult, status_code=201)
async def apply_leave(
    body: LeaveRequestCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Charges the balance immediately."""
    return await LeaveService.apply_leave(db, actor, body, ip_address=_client_ip(request))


# ── GET /my-leaves ──────────────────────────────────────────────────

@router.get("/my-leaves", response_model=PaginatedResponse[LeaveRequestOut])
async def my_leaves(
    status: Optional[LeaveStatus] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    params: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.list_leave_requests(
        db,
        actor,
        scope="my",
        status=status,
        leave_type_id=leave_type_id,
        from_date=from_date,
        to_date=to_date,
        params=params,
    )


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=PaginatedResponse[LeaveRequestOut])
async def list_requests(
    scope: str = Query("department", pattern="^(my|department|all)$"),
    status: Optional[LeaveStatus] = Query(None),
    staff_id: Optional[uuid.UUID] = Query(None),
    department_id: Optional[uuid.UUID] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    params: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Department (hod) or institution-wide (principal, admin) listing."""
    return await LeaveService.list_leave_requests(
        db,
        actor,
        scope=scope,
        status=status,
        staff_id=staff_id,
        department_id=department_id,
        leave_type_id=leave_type_id,
        from_date=from_date,
        to_date=to_date,
        params=params,
    )


# ── GET /pending-approvals ──────────────────────────────────────────

@router.get("/pending-approvals", response_model=list[LeaveRequestOut])
async def pending_approvals(
    actor: Actor = Depends(require_role(StaffRole.hod, StaffRole.principal)),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_pending_approvals(db, actor)


# ── GET /types ──────────────────────────────────────────────────────

@router.get("/types", response_model=list[LeaveTypeOut])
async def leave_types(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave_types(db, actor)


# ── Balances ────────────────────────────────────────────────────────
# Declared before /{request_id} so "balances" is never parsed as an id.

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def my_balances(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_balances(db, actor, year=year)


@router.get("/balances/summary", response_model=BalanceSummaryOut)
async def balance_summary(
    year: int = Query(..., ge=2000, le=2100),
    department_id: Optional[uuid.UUID] = Query(None),
    actor: Actor = Depends(require_role(StaffRole.admin, StaffRole.principal)),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.balance_summary(
        db, actor, year, department_id=department_id,
    )


@router.get("/balances/{staff_id}", response_model=list[LeaveBalanceOut])
async def staff_balances(
    staff_id: uuid.UUID,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_balances(db, actor, staff_id=staff_id, year=year)


@router.post("/balances/allocate", response_model=LeaveBalanceOut)
async def allocate_balance(
    body: AllocateRequest,
    actor: Actor = Depends(require_role(StaffRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.allocate_balance(
        db, actor, body.staff_id, body.leave_type_id, body.year, body.amount,
    )


@router.post("/balances/bulk-allocate", response_model=BulkAllocateResult)
async def bulk_allocate(
    body: BulkAllocateRequest,
    actor: Actor = Depends(require_role(StaffRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.bulk_allocate(db, actor, body.year)


@router.post("/balances/reset", response_model=list[LeaveBalanceOut])
async def reset_balances(
    body: ResetBalancesRequest,
    actor: Actor = Depends(require_role(StaffRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.reset_balances(db, actor, body.staff_id, body.year)


# ── Single request ──────────────────────────────────────────────────

@router.get("/{request_id}", response_model=LeaveRequestOut)
async def get_leave_request(
    request_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave_request(db, request_id, actor)


@router.put("/{request_id}", response_model=LeaveRequestOut)
async def update_leave(
    request_id: uuid.UUID,
    body: LeaveRequestUpdate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Edit a pending request; the balance moves by the working-day delta."""
    return await LeaveService.update_leave(
        db, request_id, actor, body, ip_address=_client_ip(request),
    )


@router.post("/{request_id}/decide", response_model=TransitionResult)
async def decide_leave(
    request_id: uuid.UUID,
    body: DecisionRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject a pending request. Rejection restores the balance."""
    return await LeaveService.decide_leave(
        db, request_id, actor, body, ip_address=_client_ip(request),
    )


@router.post("/{request_id}/cancel", response_model=TransitionResult)
async def cancel_leave(
    request_id: uuid.UUID,
    request: Request,
    body: Optional[CancelRequest] = None,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a pending or approved request. Restores the balance."""
    return await LeaveService.cancel_leave(
        db, request_id, actor, body, ip_address=_client_ip(request),
    )


@router.delete("/{request_id}", response_model=DeleteResult)
async def delete_leave(
    request_id: uuid.UUID,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Administrative delete; restores the balance if the request is still charged."""
    return await LeaveService.delete_leave(
        db, request_id, actor, ip_address=_client_ip(request),
    )
