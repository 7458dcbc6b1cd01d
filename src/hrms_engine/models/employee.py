"""Employee and login session models."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from hrms_engine.constants import ELEVATED_ROLES
from hrms_engine.models.base import Base, TimestampMixin, UpdatedAtMixin


class Employee(Base, TimestampMixin, UpdatedAtMixin):
    """Employee account with role-based permissions."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    username: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False, default="employee")
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'hr', 'employee')",
            name="employee_role_check",
        ),
    )

    @property
    def is_elevated(self) -> bool:
        """Whether this employee may approve requests."""
        return self.role in ELEVATED_ROLES


class UserSession(Base, TimestampMixin):
    """Server-side login session, swept once expired or stale."""

    __tablename__ = "user_session"

    session_id: Mapped[str] = mapped_column(String, primary_key=True)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    data: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
