import asyncio
import logging

import telnyx
from telnyx.error import TelnyxError

from app.services.templates import render_message
from app.types.reminder_contract import DeliveryResult, MessagePayload, TemplateKind

_LOGGER = logging.getLogger(__name__)


class TelnyxChannel:
    """SMS delivery through Telnyx."""

    def __init__(self, api_key: str, from_number: str):
        telnyx.api_key = api_key
        self.from_number = from_number

    def _create(self, to: str, body: str):
        return telnyx.Message.create(from_=self.from_number, to=to, text=body)

    async def send(self, template_kind: TemplateKind, payload: MessagePayload) -> DeliveryResult:
        body = render_message(template_kind, payload)
        try:
            # telnyx SDK is blocking
            message = await asyncio.to_thread(self._create, payload.to_phone, body)
        except TelnyxError as exc:
            _LOGGER.warning("[SMS] Telnyx rejected message to %s: %s", payload.to_phone, exc)
            return DeliveryResult(success=False, error=str(exc), body=body)
        message_id = getattr(message, "id", None)
        _LOGGER.info("[SMS] Sent %s reminder to %s (%s)", template_kind.value, payload.to_phone, message_id)
        return DeliveryResult(success=True, message_id=message_id, body=body)
