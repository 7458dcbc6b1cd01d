"""Approval service - submission and resolution of employee requests."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Union
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hrms_engine.calculators.time_ledger import (
    is_weekend,
    parse_clock_time,
    planned_hours,
    round_hours,
    start_of_day,
)
from hrms_engine.clock import Clock, local_now
from hrms_engine.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from hrms_engine.models import (
    Employee,
    Holiday,
    LeaveRequest,
    OvertimeRequest,
    TimeOffRequest,
)
from hrms_engine.services.audit import record_audit
from hrms_engine.services.state_machine import (
    RequestStateMachine,
    RequestStatus,
    RequestType,
)
from hrms_engine.services.toil_service import ToilService

logger = logging.getLogger(__name__)

ApprovalRequest = Union[LeaveRequest, TimeOffRequest, OvertimeRequest]

LEAVE_TYPES = frozenset({"vacation", "sick", "personal", "emergency"})
TIME_OFF_TYPES = frozenset(
    {"vacation", "sick", "personal", "maternity", "paternity", "bereavement", "toil"}
)

REQUEST_MODELS: dict[RequestType, type[ApprovalRequest]] = {
    RequestType.LEAVE: LeaveRequest,
    RequestType.TIMEOFF: TimeOffRequest,
    RequestType.OVERTIME: OvertimeRequest,
}


def parse_request_type(value: str | RequestType) -> RequestType:
    """Parse a request type, raising ValidationError for unknown kinds."""
    try:
        return RequestType(value)
    except ValueError:
        raise ValidationError(
            f"Unknown request type '{value}'",
            {"allowed": [t.value for t in RequestType]},
        ) from None


def _require_text(value: str | None, field_name: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field_name} is required", {"field": field_name})
    return value.strip()


def _check_date_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ValidationError(
            "End date cannot precede start date",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )


def _to_hours(value: Decimal | float | int | str, field_name: str) -> Decimal:
    try:
        hours = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number", {"field": field_name}) from None
    if hours < 0:
        raise ValidationError(f"{field_name} cannot be negative", {"field": field_name})
    return round_hours(hours)


class ApprovalService:
    """Service for the request approval workflow.

    Operations:
    - submit_leave / submit_time_off / submit_overtime: create pending requests
    - approve: pending → approved (elevated roles only)
    - reject: pending → rejected with a mandatory reason
    - list_pending / list_for_employee: read access

    A request leaves pending exactly once. The status write is conditional
    on the row still being pending, so concurrent approvers cannot both win.
    """

    def __init__(self, session: AsyncSession, clock: Clock = local_now):
        self.session = session
        self.clock = clock
        self.toil_service = ToilService(session, clock)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_leave(
        self,
        employee: Employee,
        *,
        leave_type: str,
        start_date: date,
        end_date: date,
        reason: str,
    ) -> LeaveRequest:
        """Create a pending leave request."""
        if leave_type not in LEAVE_TYPES:
            raise ValidationError(
                f"Unknown leave type '{leave_type}'",
                {"allowed": sorted(LEAVE_TYPES)},
            )
        _check_date_range(start_date, end_date)
        request = LeaveRequest(
            employee_id=employee.employee_id,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            reason=_require_text(reason, "reason"),
            status=RequestStatus.PENDING.value,
        )
        return await self._add(request)

    async def submit_time_off(
        self,
        employee: Employee,
        *,
        time_off_type: str,
        start_date: date,
        end_date: date,
        days: Decimal | float,
        reason: str | None = None,
        is_emergency: bool = False,
        toil_hours_used: Decimal | float = 0,
    ) -> TimeOffRequest:
        """Create a pending time-off request.

        A ``toil`` request must name the TOIL hours it will consume.
        """
        if time_off_type not in TIME_OFF_TYPES:
            raise ValidationError(
                f"Unknown time-off type '{time_off_type}'",
                {"allowed": sorted(TIME_OFF_TYPES)},
            )
        _check_date_range(start_date, end_date)
        days_value = _to_hours(days, "days")
        if days_value <= 0:
            raise ValidationError("days must be positive", {"field": "days"})

        is_toil = time_off_type == "toil"
        toil_hours = _to_hours(toil_hours_used, "toil_hours_used")
        if is_toil and toil_hours <= 0:
            raise ValidationError(
                "TOIL time off must specify the hours to use",
                {"field": "toil_hours_used"},
            )
        if not is_toil and toil_hours > 0:
            raise ValidationError(
                "Only TOIL time off may consume TOIL hours",
                {"field": "toil_hours_used"},
            )

        request = TimeOffRequest(
            employee_id=employee.employee_id,
            time_off_type=time_off_type,
            start_date=start_date,
            end_date=end_date,
            days=days_value,
            reason=reason.strip() if reason else None,
            is_emergency=is_emergency,
            is_toil_request=is_toil,
            toil_hours_used=toil_hours,
            status=RequestStatus.PENDING.value,
        )
        return await self._add(request)

    async def submit_overtime(
        self,
        employee: Employee,
        *,
        requested_date: date,
        start_time: str,
        end_time: str,
        reason: str,
        work_description: str,
    ) -> OvertimeRequest:
        """Create a pending overtime request with its TOIL estimate."""
        try:
            parse_clock_time(start_time)
            parse_clock_time(end_time)
        except ValueError as e:
            raise ValidationError(str(e), {"start_time": start_time, "end_time": end_time}) from None

        holiday = await self._is_holiday(requested_date)
        request = OvertimeRequest(
            employee_id=employee.employee_id,
            requested_date=requested_date,
            start_time=start_time,
            end_time=end_time,
            reason=_require_text(reason, "reason"),
            work_description=_require_text(work_description, "work_description"),
            is_weekend=is_weekend(requested_date),
            is_holiday=holiday,
            estimated_hours=planned_hours(requested_date, start_time, end_time),
            status=RequestStatus.PENDING.value,
        )
        return await self._add(request)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def get_request(
        self, request_type: RequestType | str, request_id: UUID
    ) -> ApprovalRequest | None:
        """Load a request of the given type."""
        model = REQUEST_MODELS[parse_request_type(request_type)]
        result = await self.session.execute(select(model).where(model.request_id == request_id))
        return result.scalar_one_or_none()

    async def approve(
        self,
        request_type: RequestType | str,
        request_id: UUID,
        actor: Employee,
        *,
        notes: str | None = None,
        toil_hours_awarded: Decimal | float | None = None,
    ) -> ApprovalRequest:
        """Approve a pending request.

        Overtime approval records ``toil_hours_awarded`` (defaulting to the
        request's estimate) and credits it to the TOIL balance. TOIL time off
        spends the requested hours; a short balance is a ConflictError.
        """
        kind = parse_request_type(request_type)
        awarded: Decimal | None = None
        if toil_hours_awarded is not None:
            if kind != RequestType.OVERTIME:
                raise ValidationError("toil_hours_awarded only applies to overtime requests")
            awarded = _to_hours(toil_hours_awarded, "toil_hours_awarded")

        request = await self._load_for_transition(kind, request_id, actor)
        RequestStateMachine.validate_transition(request.status, RequestStatus.APPROVED)

        extra: dict[str, object] = {}
        if isinstance(request, OvertimeRequest):
            awarded = awarded if awarded is not None else request.estimated_hours
            extra["toil_hours_awarded"] = awarded
        elif isinstance(request, TimeOffRequest) and request.is_toil_request:
            await self.toil_service.use_hours(request.employee_id, request.toil_hours_used)

        await self._transition(
            kind,
            request,
            RequestStatus.APPROVED,
            actor,
            approval_notes=notes.strip() if notes else None,
            **extra,
        )

        if isinstance(request, OvertimeRequest) and awarded and awarded > 0:
            await self.toil_service.credit(
                request.employee_id,
                awarded,
                start_of_day(request.requested_date),
                overtime_request_id=request.request_id,
                notes=f"TOIL awarded for approved overtime on {request.requested_date.isoformat()}",
            )

        return request

    async def reject(
        self,
        request_type: RequestType | str,
        request_id: UUID,
        actor: Employee,
        reason: str | None,
    ) -> ApprovalRequest:
        """Reject a pending request with a mandatory reason."""
        kind = parse_request_type(request_type)
        self._require_elevated(actor)
        reason = _require_text(reason, "rejection reason")

        request = await self._load_for_transition(kind, request_id, actor)
        errors = RequestStateMachine.validate_request_for_transition(
            request, RequestStatus.REJECTED, reason
        )
        if errors:
            raise InvalidTransitionError(request.status, RequestStatus.REJECTED, "; ".join(errors))

        await self._transition(
            kind,
            request,
            RequestStatus.REJECTED,
            actor,
            rejection_reason=reason,
        )
        return request

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_pending(self, actor: Employee) -> list[tuple[RequestType, ApprovalRequest]]:
        """All pending requests across types, oldest first."""
        self._require_elevated(actor)
        pending: list[tuple[RequestType, ApprovalRequest]] = []
        for kind, model in REQUEST_MODELS.items():
            result = await self.session.execute(
                select(model)
                .where(model.status == RequestStatus.PENDING.value)
                .order_by(model.created_at)
            )
            pending.extend((kind, r) for r in result.scalars().all())
        return pending

    async def list_for_employee(
        self,
        actor: Employee,
        employee_id: UUID,
        request_type: RequestType | str,
    ) -> list[ApprovalRequest]:
        """Requests of one employee; others' requests need an elevated role."""
        if actor.employee_id != employee_id and not actor.is_elevated:
            raise PermissionDeniedError("Access denied")
        model = REQUEST_MODELS[parse_request_type(request_type)]
        result = await self.session.execute(
            select(model).where(model.employee_id == employee_id).order_by(model.created_at.desc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _add(self, request: ApprovalRequest) -> ApprovalRequest:
        self.session.add(request)
        await self.session.flush()
        logger.info(
            "Request %s (%s) submitted by employee %s",
            request.request_id,
            type(request).__tablename__,
            request.employee_id,
        )
        return request

    async def _is_holiday(self, day: date) -> bool:
        result = await self.session.execute(
            select(func.count()).select_from(Holiday).where(Holiday.holiday_date == day)
        )
        return (result.scalar_one() or 0) > 0

    @staticmethod
    def _require_elevated(actor: Employee) -> None:
        if not actor.is_elevated:
            raise PermissionDeniedError("Insufficient permissions")

    async def _load_for_transition(
        self, kind: RequestType, request_id: UUID, actor: Employee
    ) -> ApprovalRequest:
        self._require_elevated(actor)
        request = await self.get_request(kind, request_id)
        if request is None:
            raise NotFoundError(f"{kind.value} request", request_id)
        return request

    async def _transition(
        self,
        kind: RequestType,
        request: ApprovalRequest,
        to_status: RequestStatus,
        actor: Employee,
        **values: object,
    ) -> None:
        """Write the status change only if the row is still pending."""
        model = type(request)
        from_status = request.status
        processed_at = self.clock()

        result = await self.session.execute(
            update(model)
            .where(
                model.request_id == request.request_id,
                model.status == RequestStatus.PENDING.value,
            )
            .values(
                status=to_status.value,
                approved_by_id=actor.employee_id,
                processed_at=processed_at,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(request)

        if result.rowcount == 0:
            raise InvalidTransitionError(
                request.status,
                to_status,
                "request was resolved concurrently",
            )

        await record_audit(
            self.session,
            entity_type=model.__tablename__,
            entity_id=request.request_id,
            action=f"status_change:{from_status}:{to_status.value}",
            actor_employee_id=actor.employee_id,
            details={
                key: str(value) if value is not None else None
                for key, value in values.items()
            }
            or None,
        )
        logger.info(
            "%s request %s %s by %s",
            kind.value,
            request.request_id,
            to_status.value,
            actor.employee_id,
        )
