"""Attendance API endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from hrms_engine.api.dependencies import ClockDep, CurrentEmployee, DbSession, SettingsDep
from hrms_engine.api.schemas import (
    AttendanceResponse,
    AttendanceUpdate,
    BulkAttendanceUpdate,
    BulkUpdateResponse,
    CheckInRequest,
    CheckOutRequest,
    CheckOutResponse,
    ErrorResponse,
)
from hrms_engine.services.attendance_service import AttendanceService, LocationFix

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.post(
    "/check-in",
    response_model=AttendanceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def check_in(
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
    payload: CheckInRequest,
) -> AttendanceResponse:
    """Open today's attendance record."""
    service = AttendanceService(db, clock)
    record = await service.check_in(
        employee,
        LocationFix(
            latitude=payload.latitude,
            longitude=payload.longitude,
            accuracy=payload.accuracy,
            location=payload.location,
            notes=payload.notes,
        ),
        device_info=payload.device_info,
        is_remote=payload.is_remote,
    )
    await db.commit()
    return AttendanceResponse.model_validate(record)


@router.post(
    "/{attendance_id}/check-out",
    response_model=CheckOutResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def check_out(
    attendance_id: UUID,
    db: DbSession,
    clock: ClockDep,
    settings: SettingsDep,
    employee: CurrentEmployee,
    payload: CheckOutRequest,
) -> CheckOutResponse:
    """Close an open record and return its working summary."""
    service = AttendanceService(db, clock, standard_hours=settings.standard_work_hours)
    record, metrics = await service.check_out(
        employee,
        attendance_id,
        LocationFix(
            latitude=payload.latitude,
            longitude=payload.longitude,
            accuracy=payload.accuracy,
            location=payload.location,
            notes=payload.notes,
        ),
    )
    await db.commit()
    return CheckOutResponse.model_validate(
        {
            **AttendanceResponse.model_validate(record).model_dump(),
            "workingSummary": metrics.working_summary(),
        }
    )


@router.get("/today", response_model=AttendanceResponse | None)
async def get_today(
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
) -> AttendanceResponse | None:
    """The caller's record for today, if any."""
    record = await AttendanceService(db, clock).get_today(employee)
    if record is None:
        return None
    return AttendanceResponse.model_validate(record)


@router.put(
    "/{attendance_id}",
    response_model=AttendanceResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_attendance(
    attendance_id: UUID,
    db: DbSession,
    clock: ClockDep,
    settings: SettingsDep,
    employee: CurrentEmployee,
    payload: AttendanceUpdate,
) -> AttendanceResponse:
    """Admin correction of a single record."""
    service = AttendanceService(db, clock, standard_hours=settings.standard_work_hours)
    record = await service.admin_update(
        employee, attendance_id, payload.model_dump(exclude_unset=True)
    )
    await db.commit()
    return AttendanceResponse.model_validate(record)


@router.post(
    "/bulk-update",
    response_model=BulkUpdateResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def bulk_update_attendance(
    db: DbSession,
    clock: ClockDep,
    settings: SettingsDep,
    employee: CurrentEmployee,
    payload: BulkAttendanceUpdate,
) -> BulkUpdateResponse:
    """Apply one admin correction to many records."""
    service = AttendanceService(db, clock, standard_hours=settings.standard_work_hours)
    result = await service.bulk_admin_update(
        employee,
        payload.attendance_ids,
        payload.changes.model_dump(exclude_unset=True),
    )
    await db.commit()
    return BulkUpdateResponse(
        updated=result.updated,
        total=result.total,
        errors=result.errors,
    )
