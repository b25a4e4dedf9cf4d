import pytest

import db
from app.services.dispatcher import DeliveryDispatcher
from app.services.retry_controller import RetryController
from app.types.reminder_contract import ReminderStatus, ReminderType
from conftest import FakeChannel


async def _new_record(appointment_id=42):
    return await db.create_record(appointment_id, 1, ReminderType.DAY_BEFORE, "+5511999990000")


@pytest.mark.asyncio
async def test_success_on_first_attempt(ledger_db, make_snapshot, recording_sleep):
    record_id = await _new_record()
    channel = FakeChannel()
    controller = RetryController(DeliveryDispatcher(channel), max_attempts=3, sleep=recording_sleep)

    outcome = await controller.deliver(record_id, ReminderType.DAY_BEFORE, make_snapshot())

    assert outcome.status == ReminderStatus.SENT
    assert outcome.attempts == 1
    assert recording_sleep.delays == []
    record = await db.get_record(record_id)
    assert record.status == "sent"
    assert record.attempts == 1
    assert record.external_message_id == "fake-1"
    assert "Maria Silva" in record.message_body


@pytest.mark.asyncio
async def test_backs_off_then_succeeds(ledger_db, make_snapshot, recording_sleep):
    record_id = await _new_record()
    channel = FakeChannel(fail_times=2)
    controller = RetryController(DeliveryDispatcher(channel), max_attempts=3, sleep=recording_sleep)

    outcome = await controller.deliver(record_id, ReminderType.DAY_BEFORE, make_snapshot())

    assert outcome.status == ReminderStatus.SENT
    assert outcome.attempts == 3
    assert outcome.message_id == "fake-3"
    assert recording_sleep.delays == [2, 4]
    record = await db.get_record(record_id)
    assert record.status == "sent"
    assert record.attempts == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(ledger_db, make_snapshot, recording_sleep):
    record_id = await _new_record()
    channel = FakeChannel(fail_times=100)
    controller = RetryController(DeliveryDispatcher(channel), max_attempts=3, sleep=recording_sleep)

    outcome = await controller.deliver(record_id, ReminderType.DAY_BEFORE, make_snapshot())

    assert outcome.status == ReminderStatus.PERMANENTLY_FAILED
    assert outcome.attempts == 3
    assert channel.calls == 3
    assert recording_sleep.delays == [2, 4]
    record = await db.get_record(record_id)
    assert record.status == "permanently_failed"
    assert record.attempts == 3
    assert record.sent_at is None
    assert "call 3" in record.error_details


@pytest.mark.asyncio
async def test_intermediate_failures_are_recorded(ledger_db, make_snapshot):
    record_id = await _new_record()
    seen = []

    async def inspecting_sleep(seconds):
        record = await db.get_record(record_id)
        seen.append((record.status, record.attempts))

    controller = RetryController(DeliveryDispatcher(FakeChannel(fail_times=1)), max_attempts=3, sleep=inspecting_sleep)
    await controller.deliver(record_id, ReminderType.DAY_BEFORE, make_snapshot())

    assert seen == [("failed", 1)]


@pytest.mark.asyncio
async def test_channel_exceptions_are_not_retried(ledger_db, make_snapshot, recording_sleep):
    record_id = await _new_record()
    channel = FakeChannel(raise_for={"+5511999990000"})
    controller = RetryController(DeliveryDispatcher(channel), max_attempts=3, sleep=recording_sleep)

    with pytest.raises(RuntimeError, match="channel exploded"):
        await controller.deliver(record_id, ReminderType.DAY_BEFORE, make_snapshot())

    assert channel.calls == 1
    assert recording_sleep.delays == []
