"""TOIL (time off in lieu) balance service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hrms_engine.calculators.time_ledger import round_hours
from hrms_engine.clock import Clock, local_now
from hrms_engine.constants import TOIL_EXPIRING_WINDOW, TOIL_EXPIRY
from hrms_engine.errors import ConflictError, ValidationError
from hrms_engine.models import AttendanceRecord, ToilBalance

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


@dataclass(frozen=True)
class ToilBalanceSummary:
    """An employee's usable TOIL."""

    total_hours: Decimal
    expiring_hours: Decimal
    expiring_date: datetime | None


class ToilService:
    """Service for crediting, spending and expiring TOIL hours.

    Every credit is its own parcel that expires 21 days after it was earned.
    Spending always draws from the parcel closest to expiry first.
    """

    def __init__(self, session: AsyncSession, clock: Clock = local_now):
        self.session = session
        self.clock = clock

    async def credit(
        self,
        employee_id: UUID,
        hours: Decimal,
        earned_date: datetime,
        *,
        attendance_id: UUID | None = None,
        overtime_request_id: UUID | None = None,
        notes: str | None = None,
    ) -> ToilBalance:
        """Add a parcel of TOIL hours."""
        hours = round_hours(Decimal(hours))
        if hours <= 0:
            raise ValidationError("TOIL credit must be positive", {"hours": str(hours)})

        parcel = ToilBalance(
            employee_id=employee_id,
            hours_earned=hours,
            hours_used=_ZERO,
            hours_remaining=hours,
            earned_date=earned_date,
            expiry_date=earned_date + TOIL_EXPIRY,
            attendance_id=attendance_id,
            overtime_request_id=overtime_request_id,
            notes=notes,
        )
        self.session.add(parcel)
        await self.session.flush()
        return parcel

    async def accrue_from_attendance(self, record: AttendanceRecord) -> ToilBalance | None:
        """Credit the TOIL a closed attendance record earned.

        Idempotent: a record that already produced a parcel is skipped.
        """
        if record.check_in is None or record.check_out is None:
            return None
        if not record.is_toil_eligible or record.toil_hours_earned <= 0:
            return None

        existing = await self.session.execute(
            select(ToilBalance.toil_balance_id).where(
                ToilBalance.attendance_id == record.attendance_id
            )
        )
        if existing.scalar_one_or_none() is not None:
            return None

        if record.is_weekend_work or record.is_holiday_work:
            kind = "weekend" if record.is_weekend_work else "holiday"
            notes = f"TOIL earned for {kind} work"
        else:
            notes = f"TOIL earned for {record.overtime_hours} hours overtime"

        return await self.credit(
            record.employee_id,
            record.toil_hours_earned,
            record.check_in,
            attendance_id=record.attendance_id,
            notes=notes,
        )

    async def _active_parcels(self, employee_id: UUID) -> list[ToilBalance]:
        result = await self.session.execute(
            select(ToilBalance)
            .where(
                ToilBalance.employee_id == employee_id,
                ToilBalance.is_expired.is_(False),
                ToilBalance.hours_remaining > 0,
            )
            .order_by(ToilBalance.expiry_date, ToilBalance.created_at)
        )
        return list(result.scalars().all())

    async def get_balance(self, employee_id: UUID) -> ToilBalanceSummary:
        """Total usable hours and the hours expiring within 7 days."""
        now = self.clock()
        horizon = now + TOIL_EXPIRING_WINDOW

        total = _ZERO
        expiring = _ZERO
        expiring_date: datetime | None = None
        for parcel in await self._active_parcels(employee_id):
            if parcel.expiry_date <= now:
                continue
            total += parcel.hours_remaining
            if parcel.expiry_date <= horizon:
                expiring += parcel.hours_remaining
                if expiring_date is None or parcel.expiry_date < expiring_date:
                    expiring_date = parcel.expiry_date

        return ToilBalanceSummary(
            total_hours=round_hours(total),
            expiring_hours=round_hours(expiring),
            expiring_date=expiring_date,
        )

    async def use_hours(self, employee_id: UUID, hours: Decimal) -> Decimal:
        """Spend TOIL hours, oldest expiry first.

        Raises ConflictError without touching any parcel when the usable
        balance is short. Returns the hours deducted.
        """
        hours = round_hours(Decimal(hours))
        if hours <= 0:
            raise ValidationError("TOIL hours to use must be positive", {"hours": str(hours)})

        now = self.clock()
        parcels = [p for p in await self._active_parcels(employee_id) if p.expiry_date > now]
        available = sum((p.hours_remaining for p in parcels), _ZERO)
        if available < hours:
            raise ConflictError(
                f"Insufficient TOIL balance: {available} hours available, {hours} requested",
                {"available": str(available), "requested": str(hours)},
            )

        remaining = hours
        for parcel in parcels:
            if remaining <= 0:
                break
            deduct = min(remaining, parcel.hours_remaining)
            parcel.hours_used = parcel.hours_used + deduct
            parcel.hours_remaining = parcel.hours_remaining - deduct
            remaining -= deduct

        await self.session.flush()
        return hours

    async def expire(self) -> int:
        """Mark parcels past their expiry date as expired.

        Returns count of parcels expired.
        """
        now = self.clock()
        result = await self.session.execute(
            update(ToilBalance)
            .where(
                ToilBalance.expiry_date <= now,
                ToilBalance.is_expired.is_(False),
                ToilBalance.hours_remaining > 0,
            )
            .values(is_expired=True)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0
        if count:
            logger.info("Expired %d TOIL parcels", count)
        return count

