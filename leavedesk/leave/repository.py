"""Persistence access for leave requests and the reference data they need."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavedesk.common.audit import AuditTrail
from leavedesk.common.constants import CHARGED_STATUSES
from leavedesk.common.exceptions import NotFoundException
from leavedesk.leave.models import LeaveApproval, LeaveRequest, LeaveType
from leavedesk.org.models import Staff


def request_query():
    """Base SELECT for a request with applicant, type and approval trail."""
    return select(LeaveRequest).options(
        selectinload(LeaveRequest.applicant),
        selectinload(LeaveRequest.leave_type),
        selectinload(LeaveRequest.approvals).selectinload(LeaveApproval.approver),
    )


class LeaveRepository:

    @staticmethod
    async def get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> LeaveRequest:
        query = request_query().where(LeaveRequest.id == request_id)
        if for_update:
            query = query.with_for_update(of=LeaveRequest).execution_options(
                populate_existing=True
            )
        result = await db.execute(query)
        leave_request = result.scalars().first()
        if leave_request is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_request

    @staticmethod
    async def was_deleted(db: AsyncSession, request_id: uuid.UUID) -> bool:
        """True if the audit trail records an earlier delete of the request."""
        query = select(func.count()).select_from(AuditTrail).where(
            AuditTrail.entity_type == "leave_request",
            AuditTrail.entity_id == request_id,
            AuditTrail.action == "delete",
        )
        return (await db.execute(query)).scalar_one() > 0

    @staticmethod
    async def get_staff(db: AsyncSession, staff_id: uuid.UUID) -> Staff:
        result = await db.execute(
            select(Staff)
            .where(Staff.id == staff_id)
            .options(selectinload(Staff.department))
        )
        staff = result.scalars().first()
        if staff is None:
            raise NotFoundException("Staff", str(staff_id))
        return staff

    @staticmethod
    async def get_leave_type(db: AsyncSession, leave_type_id: uuid.UUID) -> LeaveType:
        result = await db.execute(
            select(LeaveType).where(LeaveType.id == leave_type_id)
        )
        leave_type = result.scalars().first()
        if leave_type is None:
            raise NotFoundException("LeaveType", str(leave_type_id))
        return leave_type

    @staticmethod
    async def has_overlap(
        db: AsyncSession,
        applicant_id: uuid.UUID,
        start_date: date,
        end_date: date,
        *,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """True if a pending/approved request of the applicant touches the range."""
        query = select(func.count()).select_from(LeaveRequest).where(
            LeaveRequest.applicant_id == applicant_id,
            LeaveRequest.status.in_(list(CHARGED_STATUSES)),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )
        if exclude_id is not None:
            query = query.where(LeaveRequest.id != exclude_id)
        return (await db.execute(query)).scalar_one() > 0

    @staticmethod
    async def add_request(db: AsyncSession, leave_request: LeaveRequest) -> LeaveRequest:
        db.add(leave_request)
        await db.flush()
        return leave_request

    @staticmethod
    async def delete_request(db: AsyncSession, leave_request: LeaveRequest) -> None:
        """Remove the request; its approval rows go with it."""
        await db.delete(leave_request)
        await db.flush()
