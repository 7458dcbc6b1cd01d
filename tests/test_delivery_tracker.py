"""Tests for message delivery tracking and retries."""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from hrms_engine.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from hrms_engine.models import ChatGroup, GroupMembership, Message, MessageDeliveryLog
from hrms_engine.services.delivery_tracker import MessagingService


async def _direct(service, sender, recipient):
    message, _ = await service.send(
        sender, recipient_id=recipient.employee_id, content="Stand-up moved to 10:00"
    )
    return message


async def _log_count(session) -> int:
    return (
        await session.execute(select(func.count()).select_from(MessageDeliveryLog))
    ).scalar_one()


class TestSend:
    async def test_direct_message(self, session, clock, employee, other_employee):
        message, logs = await MessagingService(session, clock).send(
            employee, recipient_id=other_employee.employee_id, content="Hello"
        )

        assert message.delivery_status == "sent"
        assert message.retry_count == 0
        assert message.sent_at == clock.now
        assert len(logs) == 1
        assert logs[0].recipient_id == other_employee.employee_id
        assert logs[0].delivery_status == "pending"

    async def test_group_message_skips_sender_and_inactive(
        self, session, clock, employee, other_employee, admin, hr_manager
    ):
        group = ChatGroup(name="Ops", created_by_id=admin.employee_id)
        session.add(group)
        await session.flush()
        session.add_all(
            [
                GroupMembership(group_id=group.group_id, employee_id=employee.employee_id),
                GroupMembership(group_id=group.group_id, employee_id=other_employee.employee_id),
                GroupMembership(group_id=group.group_id, employee_id=admin.employee_id),
                GroupMembership(
                    group_id=group.group_id,
                    employee_id=hr_manager.employee_id,
                    is_active=False,
                ),
            ]
        )
        await session.flush()

        _, logs = await MessagingService(session, clock).send(
            employee, group_id=group.group_id, content="Deploy at 5"
        )

        assert {log.recipient_id for log in logs} == {
            other_employee.employee_id,
            admin.employee_id,
        }

    async def test_validation(self, session, clock, employee, other_employee):
        service = MessagingService(session, clock)

        with pytest.raises(ValidationError):
            await service.send(employee, recipient_id=other_employee.employee_id, content="  ")
        with pytest.raises(ValidationError):
            await service.send(employee, content="Hi")
        with pytest.raises(NotFoundError):
            await service.send(employee, recipient_id=uuid4(), content="Hi")

        assert await _log_count(session) == 0


class TestStatusUpdates:
    async def test_delivered_then_read(self, session, clock, employee, other_employee):
        service = MessagingService(session, clock)
        message = await _direct(service, employee, other_employee)

        await service.mark_delivered(message.message_id, other_employee.employee_id)
        await service.mark_read(message.message_id, other_employee.employee_id)

        assert message.delivery_status == "read"
        assert message.is_read is True
        log = (await service.delivery_log(message.message_id))[0]
        assert log.delivery_status == "read"
        assert log.read_at == clock.now

    async def test_read_message_cannot_fail(self, session, clock, employee, other_employee):
        service = MessagingService(session, clock)
        message = await _direct(service, employee, other_employee)
        await service.mark_read(message.message_id, other_employee.employee_id)

        with pytest.raises(ConflictError):
            await service.mark_failed(message.message_id, other_employee.employee_id, "timeout")

        assert message.delivery_status == "read"

    async def test_admin_only_status_update(
        self, session, clock, employee, other_employee, admin
    ):
        service = MessagingService(session, clock)
        message = await _direct(service, employee, other_employee)

        with pytest.raises(PermissionDeniedError):
            await service.update_delivery_status(employee, message.message_id, "delivered")

        updated = await service.update_delivery_status(admin, message.message_id, "delivered")
        assert updated.delivery_status == "delivered"

        with pytest.raises(ValidationError):
            await service.update_delivery_status(admin, message.message_id, "teleported")


class TestRetry:
    async def test_retry_resends_failed_message(self, session, clock, employee, other_employee):
        service = MessagingService(session, clock)
        message = await _direct(service, employee, other_employee)
        await service.mark_failed(message.message_id, other_employee.employee_id, "offline")

        clock.advance(minutes=1)
        assert await service.retry_failed() == 1

        assert message.delivery_status == "sent"
        assert message.retry_count == 1
        assert message.last_retry_at == clock.now
        logs = await service.delivery_log(message.message_id)
        assert [log.delivery_status for log in logs] == ["failed", "pending"]

    async def test_backoff_between_retries(self, session, clock, employee, other_employee):
        service = MessagingService(session, clock)
        message = await _direct(service, employee, other_employee)
        await service.mark_failed(message.message_id, other_employee.employee_id)
        await service.retry_failed()
        await service.mark_failed(message.message_id, other_employee.employee_id)

        clock.advance(minutes=4)
        assert await service.retry_failed() == 0

        clock.advance(minutes=2)
        assert await service.retry_failed() == 1

    async def test_gives_up_after_three_retries(self, session, clock, employee, other_employee):
        service = MessagingService(session, clock)
        message = await _direct(service, employee, other_employee)
        await service.mark_failed(message.message_id, other_employee.employee_id)

        for attempt in (1, 2, 3):
            clock.advance(minutes=6)
            assert await service.retry_failed() == 1
            assert message.retry_count == attempt
            await service.mark_failed(message.message_id, other_employee.employee_id)

        clock.advance(minutes=6)
        assert await service.retry_failed() == 0
        clock.advance(days=1)
        assert await service.retry_failed() == 0

        assert message.delivery_status == "failed"
        assert message.retry_count == 3
        assert await _log_count(session) == 4

    async def test_group_retry_resends_only_current_failures(
        self, session, clock, employee, other_employee, admin
    ):
        group = ChatGroup(name="Ops", created_by_id=admin.employee_id)
        session.add(group)
        await session.flush()
        session.add_all(
            [
                GroupMembership(group_id=group.group_id, employee_id=employee.employee_id),
                GroupMembership(group_id=group.group_id, employee_id=other_employee.employee_id),
                GroupMembership(group_id=group.group_id, employee_id=admin.employee_id),
            ]
        )
        await session.flush()
        service = MessagingService(session, clock)
        message, _ = await service.send(employee, group_id=group.group_id, content="Deploy at 5")

        await service.mark_failed(message.message_id, other_employee.employee_id, "offline")
        clock.advance(minutes=6)
        assert await service.retry_failed() == 1

        await service.mark_failed(message.message_id, admin.employee_id, "offline")
        clock.advance(minutes=6)
        assert await service.retry_failed() == 1

        async def attempts(recipient):
            result = await session.execute(
                select(MessageDeliveryLog.attempt_count, MessageDeliveryLog.delivery_status)
                .where(
                    MessageDeliveryLog.message_id == message.message_id,
                    MessageDeliveryLog.recipient_id == recipient.employee_id,
                )
                .order_by(MessageDeliveryLog.attempt_count)
            )
            return sorted(tuple(row) for row in result.all())

        assert await attempts(other_employee) == [(1, "failed"), (1, "pending")]
        assert await attempts(admin) == [(1, "failed"), (2, "pending")]


class TestCleanup:
    async def test_cleanup(self, session, clock, employee, other_employee):
        service = MessagingService(session, clock)

        old = await _direct(service, employee, other_employee)
        await service.mark_delivered(old.message_id, other_employee.employee_id)

        fresh = await _direct(service, employee, other_employee)
        await service.mark_delivered(fresh.message_id, other_employee.employee_id)
        pending = await _direct(service, employee, other_employee)

        purged = await _direct(service, employee, other_employee)
        purged.is_deleted = True
        purged.deleted_at = clock.now - timedelta(days=31)

        session.add(
            MessageDeliveryLog(
                message_id=uuid4(),
                recipient_id=other_employee.employee_id,
                delivery_status="failed",
                last_attempt_at=clock.now,
            )
        )
        await session.flush()

        # Age the first delivered log past retention
        old_log = (await service.delivery_log(old.message_id))[0]
        old_log.last_attempt_at = clock.now - timedelta(days=8)
        await session.flush()

        result = await service.cleanup()

        assert result.delivery_logs_deleted == 1
        assert result.messages_deleted == 1
        assert result.message_logs_deleted == 1
        assert result.orphaned_logs_deleted == 1
        assert result.total == 4

        remaining = (await session.execute(select(MessageDeliveryLog.message_id))).scalars().all()
        assert set(remaining) == {fresh.message_id, pending.message_id}
        messages = (await session.execute(select(Message.message_id))).scalars().all()
        assert purged.message_id not in messages


class TestQueries:
    async def test_unread_and_mark_read(self, session, clock, employee, other_employee):
        service = MessagingService(session, clock)
        first = await _direct(service, employee, other_employee)
        second = await _direct(service, employee, other_employee)
        to_someone_else = await _direct(service, other_employee, employee)

        assert await service.unread_count(other_employee.employee_id) == 2

        marked = await service.mark_messages_read(
            other_employee.employee_id,
            [first.message_id, to_someone_else.message_id],
        )

        assert marked == 1
        assert await service.unread_count(other_employee.employee_id) == 1
        assert first.delivery_status == "read"
        assert second.is_read is False

    async def test_delivery_stats(self, session, clock, employee, other_employee):
        service = MessagingService(session, clock)
        first = await _direct(service, employee, other_employee)
        await _direct(service, employee, other_employee)
        await service.mark_failed(first.message_id, other_employee.employee_id)

        stats = await service.delivery_stats()

        assert stats == {"pending": 1, "delivered": 0, "failed": 1, "read": 0}

    async def test_delivery_log_for_unknown_message(self, session, clock):
        with pytest.raises(NotFoundError):
            await MessagingService(session, clock).delivery_log(uuid4())
