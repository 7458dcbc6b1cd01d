"""Leave, time-off and overtime request endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from hrms_engine.api.dependencies import ClockDep, CurrentEmployee, DbSession
from hrms_engine.api.schemas import (
    ApproveBody,
    ErrorResponse,
    LeaveRequestCreate,
    LeaveRequestResponse,
    OvertimeRequestCreate,
    OvertimeRequestResponse,
    PendingRequestsResponse,
    RejectBody,
    TimeOffRequestCreate,
    TimeOffRequestResponse,
)
from hrms_engine.services.approval_service import ApprovalService, parse_request_type
from hrms_engine.services.state_machine import RequestType

router = APIRouter(prefix="/requests", tags=["requests"])

RequestResponse = LeaveRequestResponse | TimeOffRequestResponse | OvertimeRequestResponse

RESPONSE_SCHEMAS = {
    RequestType.LEAVE: LeaveRequestResponse,
    RequestType.TIMEOFF: TimeOffRequestResponse,
    RequestType.OVERTIME: OvertimeRequestResponse,
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


@router.post(
    "/leave",
    response_model=LeaveRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def submit_leave(
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
    payload: LeaveRequestCreate,
) -> LeaveRequestResponse:
    """Submit a leave request."""
    request = await ApprovalService(db, clock).submit_leave(
        employee,
        leave_type=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
    )
    await db.commit()
    await db.refresh(request)
    return LeaveRequestResponse.model_validate(request)


@router.post(
    "/timeoff",
    response_model=TimeOffRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def submit_time_off(
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
    payload: TimeOffRequestCreate,
) -> TimeOffRequestResponse:
    """Submit a time-off request."""
    request = await ApprovalService(db, clock).submit_time_off(
        employee,
        time_off_type=payload.time_off_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        days=payload.days,
        reason=payload.reason,
        is_emergency=payload.is_emergency,
        toil_hours_used=payload.toil_hours_used,
    )
    await db.commit()
    await db.refresh(request)
    return TimeOffRequestResponse.model_validate(request)


@router.post(
    "/overtime",
    response_model=OvertimeRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def submit_overtime(
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
    payload: OvertimeRequestCreate,
) -> OvertimeRequestResponse:
    """Submit an overtime request."""
    request = await ApprovalService(db, clock).submit_overtime(
        employee,
        requested_date=payload.requested_date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        reason=payload.reason,
        work_description=payload.work_description,
    )
    await db.commit()
    await db.refresh(request)
    return OvertimeRequestResponse.model_validate(request)


@router.get(
    "/pending",
    response_model=PendingRequestsResponse,
    responses={403: {"model": ErrorResponse}},
)
async def list_pending(
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
) -> PendingRequestsResponse:
    """All pending requests, grouped by type."""
    pending = await ApprovalService(db, clock).list_pending(employee)
    response = PendingRequestsResponse(total=len(pending))
    for kind, request in pending:
        getattr(response, kind.value).append(RESPONSE_SCHEMAS[kind].model_validate(request))
    return response


@router.put(
    "/{request_type}/{request_id}/approve",
    response_model=RequestResponse,
    responses=ERROR_RESPONSES,
)
async def approve_request(
    request_type: str,
    request_id: UUID,
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
    payload: ApproveBody,
) -> RequestResponse:
    """Approve a pending request."""
    kind = parse_request_type(request_type)
    request = await ApprovalService(db, clock).approve(
        kind,
        request_id,
        employee,
        notes=payload.notes,
        toil_hours_awarded=payload.toil_hours_awarded,
    )
    await db.commit()
    return RESPONSE_SCHEMAS[kind].model_validate(request)


@router.put(
    "/{request_type}/{request_id}/reject",
    response_model=RequestResponse,
    responses=ERROR_RESPONSES,
)
async def reject_request(
    request_type: str,
    request_id: UUID,
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
    payload: RejectBody,
) -> RequestResponse:
    """Reject a pending request; a reason is required."""
    kind = parse_request_type(request_type)
    request = await ApprovalService(db, clock).reject(
        kind, request_id, employee, payload.reason
    )
    await db.commit()
    return RESPONSE_SCHEMAS[kind].model_validate(request)
