"""Balance ledger — the only code path that mutates ``leave_balances``.

Each entry is keyed by ``(staff_id, leave_type_id, year)`` and holds the
``allocated / used / remaining`` triple. After every mutation
``remaining == max(0, allocated - used)`` and ``used >= 0``.

Entries are read with ``SELECT … FOR UPDATE`` and carry an optimistic
``version`` column, so two writers on the same key either serialize in
the database or the loser gets ``StaleDataError`` on flush.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavedesk.common.exceptions import (
    InsufficientBalanceError,
    NoAllocationError,
    NotFoundException,
    ValidationException,
)
from leavedesk.leave.models import LeaveBalance

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
PRECISION = Decimal("0.1")


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


class BalanceLedger:
    """Keyed allocation/usage ledger. All methods flush but never commit."""

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_entry(
        db: AsyncSession,
        staff_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        *,
        for_update: bool = False,
    ) -> Optional[LeaveBalance]:
        """Return the entry for the key, or ``None`` when never allocated."""
        query = select(LeaveBalance).where(
            LeaveBalance.staff_id == staff_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        )
        if for_update:
            query = query.with_for_update().execution_options(
                populate_existing=True
            )
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def list_entries(
        db: AsyncSession,
        staff_id: uuid.UUID,
        year: int,
        *,
        for_update: bool = False,
    ) -> Sequence[LeaveBalance]:
        """All entries of one staff member for one year, with leave types."""
        query = (
            select(LeaveBalance)
            .where(LeaveBalance.staff_id == staff_id, LeaveBalance.year == year)
            .options(selectinload(LeaveBalance.leave_type))
            .order_by(LeaveBalance.leave_type_id)
        )
        if for_update:
            query = query.with_for_update().execution_options(
                populate_existing=True
            )
        result = await db.execute(query)
        return result.scalars().all()

    # ─────────────────────────────────────────────────────────────────
    # Mutations
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _recompute(entry: LeaveBalance) -> None:
        entry.allocated = _as_decimal(entry.allocated)
        entry.used = max(ZERO, _as_decimal(entry.used))
        entry.remaining = max(ZERO, entry.allocated - entry.used)

    @staticmethod
    async def reserve(
        db: AsyncSession,
        staff_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Decimal,
        *,
        leave_type_name: str = "leave",
    ) -> LeaveBalance:
        """Charge *days* against the entry. The single deduction path.

        Raises:
            NoAllocationError: no entry, or ``allocated == 0``.
            InsufficientBalanceError: ``days > remaining``.
        """
        days = _as_decimal(days)
        if days <= 0:
            raise ValidationException(
                {"working_days": ["Days to reserve must be greater than zero."]}
            )

        entry = await BalanceLedger.get_entry(
            db, staff_id, leave_type_id, year, for_update=True,
        )
        if entry is None or _as_decimal(entry.allocated) <= 0:
            raise NoAllocationError(leave_type_name, year)

        before = _as_decimal(entry.used)
        available = max(ZERO, _as_decimal(entry.allocated) - before)
        if days > available:
            raise InsufficientBalanceError(leave_type_name, available, days)

        entry.used = before + days
        BalanceLedger._recompute(entry)
        await db.flush()

        logger.debug(
            "Reserved %s day(s) staff=%s type=%s year=%s used %s -> %s",
            days, staff_id, leave_type_id, year, before, entry.used,
        )
        return entry

    @staticmethod
    async def restore(
        db: AsyncSession,
        staff_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Decimal,
    ) -> Optional[LeaveBalance]:
        """Reverse a prior charge; ``used`` is floored at zero.

        The ledger does not know which request produced a charge, so callers
        must invoke this at most once per charge.
        """
        days = _as_decimal(days)
        entry = await BalanceLedger.get_entry(
            db, staff_id, leave_type_id, year, for_update=True,
        )
        if entry is None:
            logger.warning(
                "No balance entry to restore %s day(s) staff=%s type=%s year=%s",
                days, staff_id, leave_type_id, year,
            )
            return None
        if days <= 0:
            return entry

        before = _as_decimal(entry.used)
        entry.used = max(ZERO, before - days)
        BalanceLedger._recompute(entry)
        await db.flush()

        logger.debug(
            "Restored %s day(s) staff=%s type=%s year=%s used %s -> %s",
            days, staff_id, leave_type_id, year, before, entry.used,
        )
        return entry

    @staticmethod
    async def allocate(
        db: AsyncSession,
        staff_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        amount: Decimal,
    ) -> tuple[LeaveBalance, bool]:
        """Set ``allocated`` for the key, creating the entry if needed.

        Returns ``(entry, created)``. Existing usage is kept.
        """
        amount = _as_decimal(amount)
        if amount < 0:
            raise ValidationException(
                {"allocated": ["Allocation cannot be negative."]}
            )
        if amount != amount.quantize(PRECISION):
            raise ValidationException(
                {"allocated": ["Allocation must have at most one decimal place."]}
            )

        entry = await BalanceLedger.get_entry(
            db, staff_id, leave_type_id, year, for_update=True,
        )
        created = entry is None
        if created:
            entry = LeaveBalance(
                staff_id=staff_id,
                leave_type_id=leave_type_id,
                year=year,
                allocated=amount,
                used=ZERO,
            )
            db.add(entry)
        else:
            entry.allocated = amount

        BalanceLedger._recompute(entry)
        await db.flush()

        logger.debug(
            "Allocated %s day(s) staff=%s type=%s year=%s (created=%s)",
            amount, staff_id, leave_type_id, year, created,
        )
        return entry, created

    @staticmethod
    async def reset(
        db: AsyncSession,
        staff_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
    ) -> LeaveBalance:
        """Zero the usage of one entry: ``used = 0``, ``remaining = allocated``."""
        entry = await BalanceLedger.get_entry(
            db, staff_id, leave_type_id, year, for_update=True,
        )
        if entry is None:
            raise NotFoundException(
                "LeaveBalance", f"{staff_id}/{leave_type_id}/{year}"
            )
        BalanceLedger._reset_entry(entry)
        await db.flush()
        return entry

    @staticmethod
    async def reset_year(
        db: AsyncSession,
        staff_id: uuid.UUID,
        year: int,
    ) -> Sequence[LeaveBalance]:
        """Reset every entry of a staff member for *year*."""
        entries = await BalanceLedger.list_entries(
            db, staff_id, year, for_update=True,
        )
        if not entries:
            raise NotFoundException("LeaveBalance", f"{staff_id}/{year}")
        for entry in entries:
            BalanceLedger._reset_entry(entry)
        await db.flush()
        return entries

    @staticmethod
    def _reset_entry(entry: LeaveBalance) -> None:
        before = entry.used
        entry.used = ZERO
        BalanceLedger._recompute(entry)
        logger.debug(
            "Reset balance staff=%s type=%s year=%s used %s -> 0",
            entry.staff_id, entry.leave_type_id, entry.year, before,
        )
