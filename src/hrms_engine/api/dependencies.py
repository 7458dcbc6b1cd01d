"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from hrms_engine.clock import Clock
from hrms_engine.config import Settings
from hrms_engine.models import Employee


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency.

    Routes commit explicitly; anything left uncommitted is rolled back.
    """
    async with request.app.state.session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def get_clock(request: Request) -> Clock:
    """Business clock configured on the app."""
    return request.app.state.clock


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_current_employee(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    x_employee_id: Annotated[str | None, Header()] = None,
) -> Employee:
    """Resolve the caller from the X-Employee-ID header."""
    if not x_employee_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Employee-ID header is required",
        )
    try:
        employee_id = UUID(x_employee_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-Employee-ID format",
        )

    employee = await db.get(Employee, employee_id)
    if employee is None or not employee.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown or inactive employee",
        )
    return employee


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
ClockDep = Annotated[Clock, Depends(get_clock)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
CurrentEmployee = Annotated[Employee, Depends(get_current_employee)]
