"""Auth dependencies — JWT validation and role enforcement.

Tokens are issued elsewhere; this module only verifies them and resolves
the ``sub`` claim to an active staff member.
"""

from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.constants import StaffRole
from leavedesk.common.exceptions import ForbiddenException
from leavedesk.config import settings
from leavedesk.database import get_db
from leavedesk.leave.approval import Actor
from leavedesk.org.models import Staff


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_actor(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """Validate the JWT and return the caller's identity, role and department."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    try:
        staff_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    result = await db.execute(
        select(Staff).where(Staff.id == staff_id, Staff.is_active.is_(True)),
    )
    staff = result.scalars().first()
    if staff is None:
        raise HTTPException(status_code=401, detail="User account is inactive or not found.")

    actor = Actor.from_staff(staff)
    request.state.actor = actor
    return actor


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: StaffRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership."""

    async def _check(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed_roles:
            raise ForbiddenException(
                detail=f"Role '{actor.role.value}' is not permitted for this action.",
            )
        return actor

    return _check
