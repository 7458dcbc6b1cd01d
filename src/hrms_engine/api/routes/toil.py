"""TOIL balance endpoints."""

from uuid import UUID

from fastapi import APIRouter

from hrms_engine.api.dependencies import ClockDep, CurrentEmployee, DbSession
from hrms_engine.api.schemas import ErrorResponse, ToilBalanceResponse
from hrms_engine.errors import PermissionDeniedError
from hrms_engine.services.toil_service import ToilService

router = APIRouter(prefix="/toil", tags=["toil"])


@router.get(
    "/balance",
    response_model=ToilBalanceResponse,
    responses={403: {"model": ErrorResponse}},
)
async def get_balance(
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
    employee_id: UUID | None = None,
) -> ToilBalanceResponse:
    """TOIL balance of the caller, or of any employee for elevated roles."""
    target = employee_id or employee.employee_id
    if target != employee.employee_id and not employee.is_elevated:
        raise PermissionDeniedError("Access denied")

    summary = await ToilService(db, clock).get_balance(target)
    return ToilBalanceResponse(
        total_hours=summary.total_hours,
        expiring_hours=summary.expiring_hours,
        expiring_date=summary.expiring_date,
    )
