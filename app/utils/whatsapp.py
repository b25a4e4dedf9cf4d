"""WhatsApp delivery through an Evolution API instance."""

from __future__ import annotations

import logging
import re
from typing import Optional

import httpx

from app.services.templates import render_message
from app.types.reminder_contract import DeliveryResult, MessagePayload, TemplateKind
from config import settings

_LOGGER = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def format_whatsapp_number(phone: str, country_code: str | None = None) -> Optional[str]:
    """Normalise a local/international phone to the digits Evolution expects.

    Returns None when the result is not a plausible mobile number.
    """
    if not phone:
        return None
    country_code = country_code or settings.DEFAULT_COUNTRY_CODE
    digits = _NON_DIGITS.sub("", phone)
    if digits.startswith("0"):
        digits = digits[1:]
    if not digits.startswith(country_code):
        digits = country_code + digits
    if not 12 <= len(digits) <= 13:
        return None
    return digits


class EvolutionChannel:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        instance: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.instance = instance
        self.timeout = timeout
        self._transport = transport

    async def send(self, template_kind: TemplateKind, payload: MessagePayload) -> DeliveryResult:
        body = render_message(template_kind, payload)
        number = format_whatsapp_number(payload.to_phone)
        if not number:
            return DeliveryResult(success=False, error=f"invalid phone number {payload.to_phone!r}", body=body)

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"apikey": self.api_key},
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    f"/message/sendText/{self.instance}",
                    json={"number": number, "text": body},
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            _LOGGER.warning(
                "[WhatsApp] Evolution API returned %s for %s: %s",
                exc.response.status_code, number, exc.response.text[:500],
            )
            return DeliveryResult(success=False, error=f"HTTP {exc.response.status_code}: {exc.response.text[:500]}", body=body)
        except (httpx.HTTPError, ValueError) as exc:
            _LOGGER.warning("[WhatsApp] Request to Evolution API failed for %s: %s", number, exc)
            return DeliveryResult(success=False, error=str(exc) or exc.__class__.__name__, body=body)

        message_id = (data.get("key") or {}).get("id") if isinstance(data, dict) else None
        if not message_id:
            return DeliveryResult(success=False, error="Evolution API response has no message key", body=body)
        _LOGGER.info("[WhatsApp] Sent %s reminder to %s (%s)", template_kind.value, number, message_id)
        return DeliveryResult(success=True, message_id=message_id, body=body)
