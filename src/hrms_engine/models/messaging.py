"""Chat message, group and delivery tracking models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from hrms_engine.models.base import Base, TimestampMixin


class ChatGroup(Base, TimestampMixin):
    """Named group conversation."""

    __tablename__ = "chat_group"

    group_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id"),
        nullable=False,
    )


class GroupMembership(Base):
    """Employee membership in a chat group."""

    __tablename__ = "group_membership"

    membership_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    group_id: Mapped[UUID] = mapped_column(
        ForeignKey("chat_group.group_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String, nullable=False, default="member")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    joined_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    left_at: Mapped[datetime | None] = mapped_column(nullable=True)


class Message(Base):
    """Direct or group message with a best-effort delivery lifecycle."""

    __tablename__ = "message"

    message_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    sender_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id"),
        nullable=False,
    )
    recipient_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employee.employee_id"),
        nullable=True,
        index=True,
    )
    group_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("chat_group.group_id"),
        nullable=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String, nullable=False, default="text")
    priority: Mapped[str] = mapped_column(String, nullable=False, default="normal")
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sent_at: Mapped[datetime] = mapped_column(nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivery_status: Mapped[str] = mapped_column(String, nullable=False, default="sent")
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_retry_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "delivery_status IN ('sent', 'delivered', 'read', 'failed')",
            name="message_delivery_status_check",
        ),
        CheckConstraint(
            "message_type IN ('text', 'file', 'image')",
            name="message_type_check",
        ),
    )


class MessageDeliveryLog(Base):
    """One delivery attempt of a message to one recipient."""

    __tablename__ = "message_delivery_log"

    delivery_log_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    message_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    recipient_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id"),
        nullable=False,
    )
    delivery_status: Mapped[str] = mapped_column(String, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_attempt_at: Mapped[datetime] = mapped_column(nullable=False)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "delivery_status IN ('pending', 'delivered', 'failed', 'read')",
            name="delivery_log_status_check",
        ),
    )
