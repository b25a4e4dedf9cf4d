"""Notification channel protocol and factory."""

from __future__ import annotations

import logging
import uuid
from typing import Protocol

from app.services.templates import render_message
from app.types.reminder_contract import DeliveryResult, MessagePayload, TemplateKind
from config import settings

_LOGGER = logging.getLogger(__name__)


class ReminderConfigError(RuntimeError):
    """Raised when the configured channel cannot be built."""


class NotificationChannel(Protocol):
    async def send(self, template_kind: TemplateKind, payload: MessagePayload) -> DeliveryResult:
        ...


class LogChannel:
    """DEV mode: render and log the message, nothing leaves the process."""

    async def send(self, template_kind: TemplateKind, payload: MessagePayload) -> DeliveryResult:
        body = render_message(template_kind, payload)
        _LOGGER.info("[LogChannel] would send %s to %s:\n%s", template_kind.value, payload.to_phone, body)
        return DeliveryResult(success=True, message_id=f"log-{uuid.uuid4()}", body=body)


def build_channel(name: str | None = None) -> NotificationChannel:
    name = (name or settings.NOTIFICATION_CHANNEL or "log").lower()
    if name == "log":
        return LogChannel()
    if name == "telnyx":
        from app.utils.sms import TelnyxChannel

        if not settings.TELNYX_API_KEY or not settings.TELNYX_FROM_NUMBER:
            raise ReminderConfigError("TELNYX_API_KEY and TELNYX_FROM_NUMBER must be set")
        return TelnyxChannel(settings.TELNYX_API_KEY, settings.TELNYX_FROM_NUMBER)
    if name == "evolution":
        from app.utils.whatsapp import EvolutionChannel

        if not settings.EVOLUTION_API_KEY:
            raise ReminderConfigError("EVOLUTION_API_KEY must be set")
        return EvolutionChannel(
            base_url=settings.EVOLUTION_API_URL,
            api_key=settings.EVOLUTION_API_KEY,
            instance=settings.EVOLUTION_INSTANCE,
            timeout=settings.EVOLUTION_TIMEOUT,
        )
    raise ReminderConfigError(f"unknown NOTIFICATION_CHANNEL {name!r}")
