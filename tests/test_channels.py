import json
from types import SimpleNamespace

import httpx
import pytest
import telnyx
from telnyx.error import TelnyxError

from app.services.dispatcher import DeliveryDispatcher
from app.types.reminder_contract import TemplateKind
from app.utils import channel as channel_mod
from app.utils.channel import LogChannel, ReminderConfigError, build_channel
from app.utils.sms import TelnyxChannel
from app.utils.whatsapp import EvolutionChannel, format_whatsapp_number
from config import settings


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("+55 11 98888-7777", "5511988887777"),
        ("(011) 98888-7777", "5511988887777"),
        ("11 3333-4444", "551133334444"),
        ("123", None),
        ("", None),
        (None, None),
    ],
)
def test_format_whatsapp_number(raw, expected):
    assert format_whatsapp_number(raw, country_code="55") == expected


@pytest.mark.asyncio
async def test_evolution_posts_text_message(make_snapshot):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["apikey"] = request.headers.get("apikey")
        seen["json"] = json.loads(request.content)
        return httpx.Response(201, json={"key": {"id": "BAE5F00D"}, "status": "PENDING"})

    channel = EvolutionChannel(
        "http://evolution.local/", "secret", "salon", transport=httpx.MockTransport(handler)
    )
    payload = DeliveryDispatcher.build_payload(make_snapshot())

    result = await channel.send(TemplateKind.DAY_BEFORE, payload)

    assert result.success
    assert result.message_id == "BAE5F00D"
    assert seen["path"] == "/message/sendText/salon"
    assert seen["apikey"] == "secret"
    assert seen["json"]["number"] == "5511999990000"
    assert seen["json"]["text"] == result.body
    assert "tomorrow" in result.body


@pytest.mark.asyncio
async def test_evolution_http_error_is_a_failed_delivery(make_snapshot):
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="instance disconnected"))
    channel = EvolutionChannel("http://evolution.local", "secret", "salon", transport=transport)

    result = await channel.send(TemplateKind.NEAR_TIME, DeliveryDispatcher.build_payload(make_snapshot()))

    assert not result.success
    assert result.error.startswith("HTTP 500")
    assert "instance disconnected" in result.error


@pytest.mark.asyncio
async def test_evolution_network_error_is_a_failed_delivery(make_snapshot):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    channel = EvolutionChannel("http://evolution.local", "secret", "salon", transport=httpx.MockTransport(handler))

    result = await channel.send(TemplateKind.NEAR_TIME, DeliveryDispatcher.build_payload(make_snapshot()))

    assert not result.success
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_evolution_rejects_invalid_number_without_calling_api(make_snapshot):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(201, json={"key": {"id": "x"}})

    channel = EvolutionChannel("http://evolution.local", "secret", "salon", transport=httpx.MockTransport(handler))
    result = await channel.send(
        TemplateKind.NEAR_TIME, DeliveryDispatcher.build_payload(make_snapshot(client_phone="12"))
    )

    assert not result.success
    assert "invalid phone number" in result.error
    assert calls == []


@pytest.mark.asyncio
async def test_telnyx_channel_sends_sms(monkeypatch, make_snapshot):
    sent = []

    def fake_create(**kwargs):
        sent.append(kwargs)
        return SimpleNamespace(id="tx-123")

    monkeypatch.setattr(telnyx.Message, "create", fake_create)
    channel = TelnyxChannel("KEY", "+15550001111")

    result = await channel.send(TemplateKind.DAY_BEFORE, DeliveryDispatcher.build_payload(make_snapshot()))

    assert result.success
    assert result.message_id == "tx-123"
    assert sent[0]["from_"] == "+15550001111"
    assert sent[0]["to"] == "+5511999990000"
    assert sent[0]["text"] == result.body


@pytest.mark.asyncio
async def test_telnyx_error_is_a_failed_delivery(monkeypatch, make_snapshot):
    def fake_create(**kwargs):
        raise TelnyxError("invalid destination")

    monkeypatch.setattr(telnyx.Message, "create", fake_create)
    channel = TelnyxChannel("KEY", "+15550001111")

    result = await channel.send(TemplateKind.NEAR_TIME, DeliveryDispatcher.build_payload(make_snapshot()))

    assert not result.success
    assert "invalid destination" in result.error


@pytest.mark.asyncio
async def test_log_channel_renders_without_sending(make_snapshot):
    result = await LogChannel().send(TemplateKind.NEAR_TIME, DeliveryDispatcher.build_payload(make_snapshot()))

    assert result.success
    assert result.message_id.startswith("log-")
    assert "Your appointment is coming up" in result.body


def test_build_channel_by_name(monkeypatch):
    monkeypatch.setattr(settings, "EVOLUTION_API_KEY", "secret")
    monkeypatch.setattr(settings, "TELNYX_API_KEY", "KEY")
    monkeypatch.setattr(settings, "TELNYX_FROM_NUMBER", "+15550001111")

    assert isinstance(build_channel("log"), LogChannel)
    assert isinstance(build_channel("EVOLUTION"), EvolutionChannel)
    assert isinstance(build_channel("telnyx"), TelnyxChannel)

    monkeypatch.setattr(settings, "NOTIFICATION_CHANNEL", "log")
    assert isinstance(channel_mod.build_channel(), LogChannel)


def test_build_channel_requires_credentials(monkeypatch):
    monkeypatch.setattr(settings, "TELNYX_API_KEY", None)
    monkeypatch.setattr(settings, "EVOLUTION_API_KEY", None)

    with pytest.raises(ReminderConfigError, match="TELNYX_API_KEY"):
        build_channel("telnyx")
    with pytest.raises(ReminderConfigError, match="EVOLUTION_API_KEY"):
        build_channel("evolution")
    with pytest.raises(ReminderConfigError, match="unknown"):
        build_channel("pigeon")
