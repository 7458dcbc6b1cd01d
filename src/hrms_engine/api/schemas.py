"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str


# ============================================================================
# Attendance schemas
# ============================================================================


class CheckInRequest(BaseModel):
    """Schema for checking in."""

    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    location: str | None = None
    notes: str | None = None
    device_info: str | None = None
    is_remote: bool = False


class CheckOutRequest(BaseModel):
    """Schema for checking out."""

    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    location: str | None = None
    notes: str | None = None


class AttendanceResponse(BaseModel):
    """Schema for attendance record response."""

    model_config = ConfigDict(from_attributes=True)

    attendance_id: UUID
    employee_id: UUID
    work_date: date
    check_in: datetime | None = None
    check_out: datetime | None = None
    check_in_location: str | None = None
    check_out_location: str | None = None
    check_in_notes: str | None = None
    check_out_notes: str | None = None
    working_hours: Decimal
    overtime_hours: Decimal
    is_toil_eligible: bool
    toil_hours_earned: Decimal
    is_weekend_work: bool
    is_holiday_work: bool
    status: str
    is_auto_checkout: bool
    admin_notes: str | None = None
    version: int


class WorkingSummary(BaseModel):
    """Hours summary returned on check-out."""

    totalHours: float
    overtimeHours: float
    toilEarned: float
    isWeekendWork: bool


class CheckOutResponse(AttendanceResponse):
    """Schema for check-out response."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    working_summary: WorkingSummary = Field(alias="workingSummary")


class AttendanceUpdate(BaseModel):
    """Schema for an admin correction; only supplied fields are applied."""

    check_in: datetime | None = None
    check_out: datetime | None = None
    status: str | None = None
    admin_notes: str | None = None
    check_in_location: str | None = None
    check_out_location: str | None = None
    check_in_notes: str | None = None
    check_out_notes: str | None = None


class BulkAttendanceUpdate(BaseModel):
    """Schema for applying one correction to many records."""

    attendance_ids: list[UUID]
    changes: AttendanceUpdate


class BulkUpdateResponse(BaseModel):
    """Schema for bulk update response."""

    updated: int
    total: int
    errors: list[dict[str, Any]] = []


# ============================================================================
# Request schemas
# ============================================================================


class LeaveRequestCreate(BaseModel):
    """Schema for submitting a leave request."""

    leave_type: str
    start_date: date
    end_date: date
    reason: str


class TimeOffRequestCreate(BaseModel):
    """Schema for submitting a time-off request."""

    time_off_type: str
    start_date: date
    end_date: date
    days: Decimal
    reason: str | None = None
    is_emergency: bool = False
    toil_hours_used: Decimal = Decimal("0")


class OvertimeRequestCreate(BaseModel):
    """Schema for submitting an overtime request."""

    requested_date: date
    start_time: str
    end_time: str
    reason: str
    work_description: str


class RequestResponseBase(BaseModel):
    """Fields common to every approval request."""

    model_config = ConfigDict(from_attributes=True)

    request_id: UUID
    employee_id: UUID
    status: str
    approved_by_id: UUID | None = None
    rejection_reason: str | None = None
    approval_notes: str | None = None
    processed_at: datetime | None = None
    created_at: datetime | None = None


class LeaveRequestResponse(RequestResponseBase):
    leave_type: str
    start_date: date
    end_date: date
    reason: str


class TimeOffRequestResponse(RequestResponseBase):
    time_off_type: str
    start_date: date
    end_date: date
    days: Decimal
    reason: str | None = None
    is_emergency: bool
    is_toil_request: bool
    toil_hours_used: Decimal


class OvertimeRequestResponse(RequestResponseBase):
    requested_date: date
    start_time: str
    end_time: str
    reason: str
    work_description: str
    is_weekend: bool
    is_holiday: bool
    estimated_hours: Decimal
    toil_hours_awarded: Decimal | None = None


class PendingRequestsResponse(BaseModel):
    """Schema for pending requests grouped by type."""

    leave: list[LeaveRequestResponse] = []
    timeoff: list[TimeOffRequestResponse] = []
    overtime: list[OvertimeRequestResponse] = []
    total: int = 0


class ApproveBody(BaseModel):
    """Schema for approving a request."""

    notes: str | None = None
    toil_hours_awarded: Decimal | None = None


class RejectBody(BaseModel):
    """Schema for rejecting a request."""

    reason: str | None = None


# ============================================================================
# TOIL schemas
# ============================================================================


class ToilBalanceResponse(BaseModel):
    """Schema for TOIL balance response."""

    total_hours: Decimal
    expiring_hours: Decimal
    expiring_date: datetime | None = None


# ============================================================================
# Messaging schemas
# ============================================================================


class MessageCreate(BaseModel):
    """Schema for sending a message."""

    content: str
    recipient_id: UUID | None = None
    group_id: UUID | None = None
    message_type: str = "text"
    priority: str = "normal"


class MessageResponse(BaseModel):
    """Schema for message response."""

    model_config = ConfigDict(from_attributes=True)

    message_id: UUID
    sender_id: UUID
    recipient_id: UUID | None = None
    group_id: UUID | None = None
    content: str
    message_type: str
    priority: str
    is_read: bool
    sent_at: datetime
    delivery_status: str
    retry_count: int
    last_retry_at: datetime | None = None


class DeliveryLogResponse(BaseModel):
    """Schema for delivery log response."""

    model_config = ConfigDict(from_attributes=True)

    delivery_log_id: UUID
    message_id: UUID
    recipient_id: UUID
    delivery_status: str
    error_message: str | None = None
    attempt_count: int
    last_attempt_at: datetime
    delivered_at: datetime | None = None
    read_at: datetime | None = None


class SendMessageResponse(BaseModel):
    """Schema for a sent message and its delivery logs."""

    message: MessageResponse
    delivery_logs: list[DeliveryLogResponse]


class UnreadCountResponse(BaseModel):
    count: int


class MarkReadRequest(BaseModel):
    message_ids: list[UUID]


class MarkReadResponse(BaseModel):
    marked: int


class DeliveryStatusUpdate(BaseModel):
    """Schema for recording a delivery outcome."""

    status: str
    recipient_id: UUID | None = None
    error_message: str | None = None


class DeliveryStatusResponse(BaseModel):
    """Schema for a message's delivery state and attempt history."""

    message_id: UUID
    delivery_status: str
    retry_count: int
    last_retry_at: datetime | None = None
    logs: list[DeliveryLogResponse]
