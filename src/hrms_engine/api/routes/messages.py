"""Messaging and delivery status endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from hrms_engine.api.dependencies import ClockDep, CurrentEmployee, DbSession
from hrms_engine.api.schemas import (
    DeliveryLogResponse,
    DeliveryStatusResponse,
    DeliveryStatusUpdate,
    ErrorResponse,
    MarkReadRequest,
    MarkReadResponse,
    MessageCreate,
    MessageResponse,
    SendMessageResponse,
    UnreadCountResponse,
)
from hrms_engine.errors import PermissionDeniedError
from hrms_engine.services.delivery_tracker import MessagingService

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post(
    "",
    response_model=SendMessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def send_message(
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
    payload: MessageCreate,
) -> SendMessageResponse:
    """Send a direct or group message."""
    message, logs = await MessagingService(db, clock).send(
        employee,
        content=payload.content,
        recipient_id=payload.recipient_id,
        group_id=payload.group_id,
        message_type=payload.message_type,
        priority=payload.priority,
    )
    await db.commit()
    return SendMessageResponse(
        message=MessageResponse.model_validate(message),
        delivery_logs=[DeliveryLogResponse.model_validate(log) for log in logs],
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
) -> UnreadCountResponse:
    """Number of unread direct messages for the caller."""
    count = await MessagingService(db, clock).unread_count(employee.employee_id)
    return UnreadCountResponse(count=count)


@router.put(
    "/mark-read",
    response_model=MarkReadResponse,
    responses={400: {"model": ErrorResponse}},
)
async def mark_read(
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
    payload: MarkReadRequest,
) -> MarkReadResponse:
    """Mark the caller's messages as read."""
    marked = await MessagingService(db, clock).mark_messages_read(
        employee.employee_id, payload.message_ids
    )
    await db.commit()
    return MarkReadResponse(marked=marked)


@router.get(
    "/{message_id}/delivery-status",
    response_model=DeliveryStatusResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_delivery_status(
    message_id: UUID,
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
) -> DeliveryStatusResponse:
    """Delivery state of a message; visible to its sender and to admins."""
    service = MessagingService(db, clock)
    message = await service.get_message(message_id)
    if message.sender_id != employee.employee_id and not employee.is_elevated:
        raise PermissionDeniedError("Access denied")

    logs = await service.delivery_log(message_id)
    return DeliveryStatusResponse(
        message_id=message.message_id,
        delivery_status=message.delivery_status,
        retry_count=message.retry_count,
        last_retry_at=message.last_retry_at,
        logs=[DeliveryLogResponse.model_validate(log) for log in logs],
    )


@router.put(
    "/{message_id}/delivery-status",
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_delivery_status(
    message_id: UUID,
    db: DbSession,
    clock: ClockDep,
    employee: CurrentEmployee,
    payload: DeliveryStatusUpdate,
) -> MessageResponse:
    """Record a delivery outcome (admin only)."""
    message = await MessagingService(db, clock).update_delivery_status(
        employee,
        message_id,
        payload.status,
        recipient_id=payload.recipient_id,
        error_message=payload.error_message,
    )
    await db.commit()
    return MessageResponse.model_validate(message)
