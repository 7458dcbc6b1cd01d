"""Audit trail helper shared by the services."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from hrms_engine.models import AuditEvent


async def record_audit(
    session: AsyncSession,
    *,
    entity_type: str,
    entity_id: UUID,
    action: str,
    actor_employee_id: UUID | None = None,
    details: dict[str, Any] | None = None,
) -> AuditEvent:
    """Record an audit event in the current transaction."""
    event = AuditEvent(
        actor_employee_id=actor_employee_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        details_json=details,
    )
    session.add(event)
    await session.flush()
    return event
