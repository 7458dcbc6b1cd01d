"""Message delivery tracking, retries and cleanup.

Delivery is best effort. A message carries an aggregate ``delivery_status``
and every (message, recipient) attempt is logged separately. Failed messages
are retried at most three times, no more often than every five minutes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hrms_engine.clock import Clock, local_now
from hrms_engine.constants import (
    DELETED_MESSAGE_RETENTION,
    DELIVERY_LOG_RETENTION,
    MAX_DELIVERY_RETRIES,
    RETRY_BACKOFF,
    RETRY_BATCH_SIZE,
    ROLE_ADMIN,
)
from hrms_engine.errors import (
    HRMSError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from hrms_engine.models import (
    ChatGroup,
    Employee,
    GroupMembership,
    Message,
    MessageDeliveryLog,
)
from hrms_engine.services.state_machine import (
    DeliveryStateMachine,
    DeliveryStatus,
    LogStatus,
)

logger = logging.getLogger(__name__)

MESSAGE_TYPES = frozenset({"text", "file", "image"})
PRIORITIES = frozenset({"low", "normal", "high", "urgent"})


@dataclass
class MessagingCleanupResult:
    """Rows removed by one messaging cleanup pass."""

    delivery_logs_deleted: int = 0
    messages_deleted: int = 0
    message_logs_deleted: int = 0
    orphaned_logs_deleted: int = 0

    @property
    def total(self) -> int:
        return (
            self.delivery_logs_deleted
            + self.messages_deleted
            + self.message_logs_deleted
            + self.orphaned_logs_deleted
        )


class MessagingService:
    """Service for sending messages and tracking their delivery."""

    def __init__(self, session: AsyncSession, clock: Clock = local_now):
        self.session = session
        self.clock = clock

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(
        self,
        sender: Employee,
        *,
        content: str,
        recipient_id: UUID | None = None,
        group_id: UUID | None = None,
        message_type: str = "text",
        priority: str = "normal",
    ) -> tuple[Message, list[MessageDeliveryLog]]:
        """Create a message and one pending delivery log per recipient."""
        if content is None or not content.strip():
            raise ValidationError("Message content is required", {"field": "content"})
        if (recipient_id is None) == (group_id is None):
            raise ValidationError("Exactly one of recipient_id or group_id is required")
        if message_type not in MESSAGE_TYPES:
            raise ValidationError(
                f"Unknown message type '{message_type}'",
                {"allowed": sorted(MESSAGE_TYPES)},
            )
        if priority not in PRIORITIES:
            raise ValidationError(
                f"Unknown priority '{priority}'",
                {"allowed": sorted(PRIORITIES)},
            )

        if recipient_id is not None:
            recipient = await self.session.get(Employee, recipient_id)
            if recipient is None or not recipient.is_active:
                raise NotFoundError("Employee", recipient_id)
            recipients = [recipient_id]
        else:
            recipients = await self._group_recipients(sender, group_id)

        now = self.clock()
        message = Message(
            sender_id=sender.employee_id,
            recipient_id=recipient_id,
            group_id=group_id,
            content=content,
            message_type=message_type,
            priority=priority,
            sent_at=now,
            delivery_status=DeliveryStatus.SENT.value,
            retry_count=0,
        )
        self.session.add(message)
        await self.session.flush()

        logs = [
            MessageDeliveryLog(
                message_id=message.message_id,
                recipient_id=rid,
                delivery_status=LogStatus.PENDING.value,
                attempt_count=1,
                last_attempt_at=now,
            )
            for rid in recipients
        ]
        self.session.add_all(logs)
        await self.session.flush()

        logger.info(
            "Message %s sent by %s to %d recipient(s)",
            message.message_id,
            sender.employee_id,
            len(logs),
        )
        return message, logs

    async def _group_recipients(self, sender: Employee, group_id: UUID) -> list[UUID]:
        group = await self.session.get(ChatGroup, group_id)
        if group is None:
            raise NotFoundError("Chat group", group_id)

        result = await self.session.execute(
            select(GroupMembership.employee_id).where(
                GroupMembership.group_id == group_id,
                GroupMembership.is_active.is_(True),
            )
        )
        members = list(result.scalars().all())
        if sender.employee_id not in members and not sender.is_elevated:
            raise PermissionDeniedError("Not a member of this group")
        return [m for m in members if m != sender.employee_id]

    # ------------------------------------------------------------------
    # Status updates
    # ------------------------------------------------------------------

    async def get_message(self, message_id: UUID) -> Message:
        message = await self.session.get(Message, message_id)
        if message is None:
            raise NotFoundError("Message", message_id)
        return message

    async def mark_delivered(self, message_id: UUID, recipient_id: UUID) -> Message:
        return await self._record_outcome(message_id, recipient_id, DeliveryStatus.DELIVERED)

    async def mark_read(self, message_id: UUID, recipient_id: UUID) -> Message:
        return await self._record_outcome(message_id, recipient_id, DeliveryStatus.READ)

    async def mark_failed(
        self, message_id: UUID, recipient_id: UUID, error: str | None = None
    ) -> Message:
        return await self._record_outcome(
            message_id, recipient_id, DeliveryStatus.FAILED, error_message=error
        )

    async def update_delivery_status(
        self,
        actor: Employee,
        message_id: UUID,
        status: str,
        *,
        recipient_id: UUID | None = None,
        error_message: str | None = None,
    ) -> Message:
        """Admin entry point for recording a delivery outcome."""
        if actor.role != ROLE_ADMIN:
            raise PermissionDeniedError("Only admins may update delivery status")
        try:
            target = DeliveryStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown delivery status '{status}'") from None
        if target == DeliveryStatus.SENT:
            raise ValidationError("Status 'sent' is set by retries only")

        message = await self.get_message(message_id)
        recipient_id = recipient_id or message.recipient_id
        if recipient_id is None:
            raise ValidationError("recipient_id is required for group messages")
        return await self._record_outcome(
            message_id, recipient_id, target, error_message=error_message
        )

    async def _latest_log(self, message_id: UUID, recipient_id: UUID) -> MessageDeliveryLog:
        result = await self.session.execute(
            select(MessageDeliveryLog)
            .where(
                MessageDeliveryLog.message_id == message_id,
                MessageDeliveryLog.recipient_id == recipient_id,
            )
            .order_by(
                # open rows first; a retry row can tie with the row it replaces
                case(
                    (
                        MessageDeliveryLog.delivery_status.in_(
                            [LogStatus.PENDING.value, LogStatus.DELIVERED.value]
                        ),
                        0,
                    ),
                    else_=1,
                ),
                MessageDeliveryLog.attempt_count.desc(),
                MessageDeliveryLog.last_attempt_at.desc(),
            )
            .limit(1)
        )
        log = result.scalar_one_or_none()
        if log is None:
            raise NotFoundError("Delivery log", f"{message_id}/{recipient_id}")
        return log

    async def _record_outcome(
        self,
        message_id: UUID,
        recipient_id: UUID,
        target: DeliveryStatus,
        *,
        error_message: str | None = None,
    ) -> Message:
        """Move the recipient's log row and, where allowed, the message."""
        message = await self.get_message(message_id)
        log = await self._latest_log(message_id, recipient_id)

        log_target = LogStatus(target.value)
        DeliveryStateMachine.validate_log_transition(log.delivery_status, log_target)
        if message.group_id is None:
            DeliveryStateMachine.validate_transition(message.delivery_status, target)

        now = self.clock()
        log.delivery_status = log_target.value
        log.last_attempt_at = now
        if target == DeliveryStatus.DELIVERED:
            log.delivered_at = now
        elif target == DeliveryStatus.READ:
            log.read_at = now
            log.delivered_at = log.delivered_at or now
        else:
            log.error_message = error_message

        # Group messages aggregate many recipients; the message status only
        # moves forward along valid edges.
        if DeliveryStateMachine.can_transition(message.delivery_status, target):
            message.delivery_status = target.value
        if target == DeliveryStatus.READ and message.recipient_id == recipient_id:
            message.is_read = True

        await self.session.flush()
        logger.info(
            "Message %s %s for recipient %s",
            message_id,
            target.value,
            recipient_id,
        )
        return message

    # ------------------------------------------------------------------
    # Retry and cleanup
    # ------------------------------------------------------------------

    async def retry_failed(self, now: datetime | None = None) -> int:
        """Re-send eligible failed messages.

        Returns count of messages retried.
        """
        now = now or self.clock()
        cutoff = now - RETRY_BACKOFF
        result = await self.session.execute(
            select(Message)
            .where(
                Message.delivery_status == DeliveryStatus.FAILED.value,
                Message.retry_count < MAX_DELIVERY_RETRIES,
                or_(Message.last_retry_at.is_(None), Message.last_retry_at < cutoff),
            )
            .order_by(Message.sent_at)
            .limit(RETRY_BATCH_SIZE)
        )
        candidates = list(result.scalars().all())

        retried = 0
        for message in candidates:
            try:
                if await self._retry(message, now):
                    retried += 1
            except HRMSError as e:
                logger.warning("Retry failed for message %s: %s", message.message_id, e)

        if retried:
            logger.info("Retried %d failed messages", retried)
        return retried

    async def _retry(self, message: Message, now: datetime) -> bool:
        DeliveryStateMachine.validate_transition(message.delivery_status, DeliveryStatus.SENT)
        attempt = message.retry_count + 1

        recipients = await self._failed_recipients(message)
        if not recipients:
            logger.warning("Message %s has no recipients to retry", message.message_id)
            return False

        update_result = await self.session.execute(
            update(Message)
            .where(
                Message.message_id == message.message_id,
                Message.delivery_status == DeliveryStatus.FAILED.value,
                Message.retry_count == message.retry_count,
            )
            .values(
                retry_count=attempt,
                last_retry_at=now,
                delivery_status=DeliveryStatus.SENT.value,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(message)
        if update_result.rowcount == 0:
            return False

        self.session.add_all(
            MessageDeliveryLog(
                message_id=message.message_id,
                recipient_id=rid,
                delivery_status=LogStatus.PENDING.value,
                attempt_count=attempt,
                last_attempt_at=now,
            )
            for rid in recipients
        )
        await self.session.flush()
        logger.info("Retrying message %s (attempt %d)", message.message_id, attempt)
        return True

    async def _failed_recipients(self, message: Message) -> list[UUID]:
        """Recipients whose current attempt failed."""
        if message.recipient_id is not None:
            return [message.recipient_id]
        result = await self.session.execute(
            select(MessageDeliveryLog.recipient_id)
            .where(MessageDeliveryLog.message_id == message.message_id)
            .distinct()
        )
        failed = []
        for recipient_id in result.scalars().all():
            log = await self._latest_log(message.message_id, recipient_id)
            if log.delivery_status == LogStatus.FAILED.value:
                failed.append(recipient_id)
        return failed

    async def cleanup(self, now: datetime | None = None) -> MessagingCleanupResult:
        """Delete old delivery logs, purged messages and orphaned logs."""
        now = now or self.clock()
        outcome = MessagingCleanupResult()

        result = await self.session.execute(
            delete(MessageDeliveryLog)
            .where(
                MessageDeliveryLog.delivery_status.in_(
                    [LogStatus.DELIVERED.value, LogStatus.READ.value]
                ),
                MessageDeliveryLog.last_attempt_at < now - DELIVERY_LOG_RETENTION,
            )
            .execution_options(synchronize_session=False)
        )
        outcome.delivery_logs_deleted = result.rowcount or 0

        purged = (
            select(Message.message_id)
            .where(
                Message.is_deleted.is_(True),
                Message.deleted_at < now - DELETED_MESSAGE_RETENTION,
            )
            .scalar_subquery()
        )
        result = await self.session.execute(
            delete(MessageDeliveryLog)
            .where(MessageDeliveryLog.message_id.in_(purged))
            .execution_options(synchronize_session=False)
        )
        outcome.message_logs_deleted = result.rowcount or 0
        result = await self.session.execute(
            delete(Message)
            .where(
                Message.is_deleted.is_(True),
                Message.deleted_at < now - DELETED_MESSAGE_RETENTION,
            )
            .execution_options(synchronize_session=False)
        )
        outcome.messages_deleted = result.rowcount or 0

        result = await self.session.execute(
            delete(MessageDeliveryLog)
            .where(MessageDeliveryLog.message_id.not_in(select(Message.message_id)))
            .execution_options(synchronize_session=False)
        )
        outcome.orphaned_logs_deleted = result.rowcount or 0

        logger.info(
            "Messaging cleanup: %d delivery logs, %d messages (%d logs), %d orphaned logs",
            outcome.delivery_logs_deleted,
            outcome.messages_deleted,
            outcome.message_logs_deleted,
            outcome.orphaned_logs_deleted,
        )
        return outcome

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def delivery_stats(self) -> dict[str, int]:
        """Delivery log counts by status."""
        result = await self.session.execute(
            select(MessageDeliveryLog.delivery_status, func.count()).group_by(
                MessageDeliveryLog.delivery_status
            )
        )
        stats = {status.value: 0 for status in LogStatus}
        for status, count in result.all():
            stats[status] = count
        return stats

    async def delivery_log(self, message_id: UUID) -> list[MessageDeliveryLog]:
        await self.get_message(message_id)
        result = await self.session.execute(
            select(MessageDeliveryLog)
            .where(MessageDeliveryLog.message_id == message_id)
            .order_by(MessageDeliveryLog.attempt_count, MessageDeliveryLog.last_attempt_at)
        )
        return list(result.scalars().all())

    async def unread_count(self, employee_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(Message)
            .where(
                Message.recipient_id == employee_id,
                Message.is_read.is_(False),
                Message.is_deleted.is_(False),
            )
        )
        return result.scalar_one() or 0

    async def mark_messages_read(self, employee_id: UUID, message_ids: list[UUID]) -> int:
        """Mark direct messages to ``employee_id`` as read.

        Messages addressed to someone else are ignored. Returns count marked.
        """
        if not message_ids:
            raise ValidationError("No message ids supplied")

        result = await self.session.execute(
            select(Message).where(
                Message.message_id.in_(message_ids),
                Message.recipient_id == employee_id,
                Message.is_read.is_(False),
            )
        )
        marked = 0
        for message in result.scalars().all():
            if DeliveryStateMachine.can_transition(message.delivery_status, DeliveryStatus.READ):
                await self._record_outcome(message.message_id, employee_id, DeliveryStatus.READ)
            else:
                message.is_read = True
            marked += 1
        await self.session.flush()
        return marked
