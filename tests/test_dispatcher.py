from datetime import time

import pytest

from app.services.dispatcher import DeliveryDispatcher
from app.services.templates import render_message
from app.types.reminder_contract import ReminderType, TemplateKind
from conftest import FakeChannel


class PointsProvider:
    def __init__(self, fail=False):
        self.fail = fail

    async def summary(self, client_id, location_id):
        if self.fail:
            raise ConnectionError("loyalty service down")
        return f"You have 120 points at location {location_id}."


def test_day_before_template(make_snapshot):
    payload = DeliveryDispatcher.build_payload(make_snapshot(), "You have 120 points.")
    body = render_message(TemplateKind.DAY_BEFORE, payload)

    assert "Hi Maria Silva!" in body
    assert "tomorrow" in body
    assert "Date: Wednesday, 11/03/2026" in body
    assert "Time: 10:00 - 11:00" in body
    assert "- Haircut\n- Manicure" in body
    assert "You have 120 points." in body
    assert "Call us at +55 11 3333-0000" in body


def test_near_time_template_falls_back_to_agent_phone(make_snapshot):
    snapshot = make_snapshot(location_phone=None, end_time=None, services=[], agent_name="")
    body = render_message(TemplateKind.NEAR_TIME, DeliveryDispatcher.build_payload(snapshot))

    assert "starts at 10:00" in body
    assert "Time: 10:00\n" in body
    assert "*Services:*" not in body
    assert "Professional:" not in body
    assert "Call us at +5511988880000" in body


@pytest.mark.asyncio
async def test_dispatch_picks_template_per_reminder_type(make_snapshot):
    channel = FakeChannel()
    dispatcher = DeliveryDispatcher(channel)

    for reminder_type in (ReminderType.DAY_BEFORE, ReminderType.NEAR_TIME, ReminderType.PRESCHEDULED):
        result = await dispatcher.dispatch(reminder_type, make_snapshot(start_time=time(15, 0)))
        assert result.success

    assert [kind for kind, _ in channel.sent] == [
        TemplateKind.DAY_BEFORE,
        TemplateKind.NEAR_TIME,
        TemplateKind.NEAR_TIME,
    ]
    assert channel.sent[0][1].to_phone == "+5511999990000"


@pytest.mark.asyncio
async def test_dispatch_without_phone_never_reaches_channel(make_snapshot):
    channel = FakeChannel()
    result = await DeliveryDispatcher(channel).dispatch(ReminderType.DAY_BEFORE, make_snapshot(client_phone=None))

    assert not result.success
    assert "no client phone" in result.error
    assert channel.calls == 0


@pytest.mark.asyncio
async def test_loyalty_summary_is_included(make_snapshot):
    channel = FakeChannel()
    await DeliveryDispatcher(channel, PointsProvider()).dispatch(ReminderType.DAY_BEFORE, make_snapshot())

    assert channel.sent[0][1].loyalty_summary == "You have 120 points at location 1."


@pytest.mark.asyncio
async def test_loyalty_failure_does_not_block_the_reminder(make_snapshot):
    channel = FakeChannel()
    result = await DeliveryDispatcher(channel, PointsProvider(fail=True)).dispatch(
        ReminderType.DAY_BEFORE, make_snapshot()
    )

    assert result.success
    assert channel.sent[0][1].loyalty_summary is None
