"""Approval routing — who may do what to a leave request.

Capability matrix, evaluated once per transition:

============  =========  ======================================  ===========  ==========
Actor role    Apply      Approve / reject                        Cancel       Delete
============  =========  ======================================  ===========  ==========
faculty       self       never                                   own          never
hod           self       faculty applicants of own department    own+managed  never
principal     self       hod and principal applicants            own+managed  never
admin         never      never                                   any          any
============  =========  ======================================  ===========  ==========

Denials never reveal which actor would have been authorised.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, false

from leavedesk.common.constants import (
    APPROVAL_LEVELS,
    ApprovalDecision,
    DecisionAction,
    LeaveStatus,
    StaffRole,
)
from leavedesk.common.exceptions import AuthorizationError
from leavedesk.org.models import Staff


@dataclass(frozen=True)
class Actor:
    """Authenticated caller: identity, role and department affiliation."""

    id: uuid.UUID
    role: StaffRole
    department_id: Optional[uuid.UUID] = None

    @classmethod
    def from_staff(cls, staff: Staff) -> "Actor":
        return cls(id=staff.id, role=staff.role, department_id=staff.department_id)

    @property
    def is_admin(self) -> bool:
        return self.role == StaffRole.admin


# Applicant roles each approver role may decide for.
_DECIDABLE_APPLICANTS: dict[StaffRole, frozenset[StaffRole]] = {
    StaffRole.hod: frozenset({StaffRole.faculty}),
    StaffRole.principal: frozenset({StaffRole.hod, StaffRole.principal}),
}

_DECISION_OUTCOME: dict[DecisionAction, tuple[ApprovalDecision, LeaveStatus]] = {
    DecisionAction.approve: (ApprovalDecision.approved, LeaveStatus.approved),
    DecisionAction.reject: (ApprovalDecision.rejected, LeaveStatus.rejected),
}


class ApprovalRouter:
    """Stateless capability checks over ``Actor`` and applicant ``Staff``."""

    # ── Apply ───────────────────────────────────────────────────────

    @staticmethod
    def can_apply(actor: Actor) -> bool:
        return not actor.is_admin

    @staticmethod
    def authorize_apply(actor: Actor) -> None:
        if not ApprovalRouter.can_apply(actor):
            raise AuthorizationError("Administrators cannot apply for leave.")

    # ── Decide ──────────────────────────────────────────────────────

    @staticmethod
    def decision_level(actor: Actor, applicant: Staff) -> Optional[int]:
        """Approval level the actor decides at, or ``None`` if not allowed."""
        allowed = _DECIDABLE_APPLICANTS.get(actor.role)
        if not allowed or applicant.role not in allowed:
            return None
        if actor.role == StaffRole.hod:
            if actor.department_id is None or applicant.department_id != actor.department_id:
                return None
        return APPROVAL_LEVELS[actor.role]

    @staticmethod
    def authorize_decision(actor: Actor, applicant: Staff) -> int:
        level = ApprovalRouter.decision_level(actor, applicant)
        if level is None:
            raise AuthorizationError(
                "You are not authorised to decide on this leave request."
            )
        return level

    @staticmethod
    def outcome(action: DecisionAction) -> tuple[ApprovalDecision, LeaveStatus]:
        """Map an approver's verb to the approval entry and request status."""
        return _DECISION_OUTCOME[action]

    # ── Cancel / edit / delete ──────────────────────────────────────

    @staticmethod
    def manages(actor: Actor, applicant: Staff) -> bool:
        return (
            actor.id != applicant.id
            and ApprovalRouter.decision_level(actor, applicant) is not None
        )

    @staticmethod
    def authorize_cancel(actor: Actor, applicant: Staff) -> None:
        if actor.is_admin or actor.id == applicant.id:
            return
        if ApprovalRouter.manages(actor, applicant):
            return
        raise AuthorizationError("You are not authorised to cancel this leave request.")

    @staticmethod
    def authorize_edit(actor: Actor, applicant: Staff) -> None:
        if actor.is_admin or actor.id == applicant.id:
            return
        raise AuthorizationError("You can only edit your own leave requests.")

    @staticmethod
    def authorize_delete(actor: Actor) -> None:
        if not actor.is_admin:
            raise AuthorizationError("Only administrators can delete leave requests.")

    # ── Visibility ──────────────────────────────────────────────────

    @staticmethod
    def can_view(actor: Actor, applicant: Staff) -> bool:
        if actor.id == applicant.id or actor.role in (StaffRole.admin, StaffRole.principal):
            return True
        return (
            actor.role == StaffRole.hod
            and actor.department_id is not None
            and applicant.department_id == actor.department_id
        )

    @staticmethod
    def authorize_view(actor: Actor, applicant: Staff) -> None:
        if not ApprovalRouter.can_view(actor, applicant):
            raise AuthorizationError("You are not authorised to view this leave request.")

    @staticmethod
    def decidable_clause(actor: Actor):
        """SQL filter on ``Staff`` matching applicants the actor may decide for."""
        allowed = _DECIDABLE_APPLICANTS.get(actor.role)
        if not allowed:
            return false()
        clause = Staff.role.in_(list(allowed))
        if actor.role == StaffRole.hod:
            if actor.department_id is None:
                return false()
            clause = and_(clause, Staff.department_id == actor.department_id)
        return clause
