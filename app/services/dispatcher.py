"""
Delivery dispatcher: turn an appointment snapshot into a message payload
and hand it to the notification channel.

No ledger writes happen here; the retry controller records every outcome.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Tuple

from app.types.reminder_contract import (
    AppointmentSnapshot,
    DeliveryResult,
    MessagePayload,
    TemplateKind,
    ReminderType,
    template_for,
)
from app.utils.channel import NotificationChannel

_LOGGER = logging.getLogger(__name__)


class LoyaltyPointsProvider(Protocol):
    """Optional collaborator that summarises a client's loyalty balance."""

    async def summary(self, client_id: int, location_id: int) -> Optional[str]:
        ...


class PayloadError(ValueError):
    """The snapshot could not be turned into a message; nothing was sent."""


class DeliveryDispatcher:
    def __init__(self, channel: NotificationChannel, loyalty: LoyaltyPointsProvider | None = None):
        self.channel = channel
        self.loyalty = loyalty

    async def _loyalty_summary(self, snapshot: AppointmentSnapshot) -> Optional[str]:
        if self.loyalty is None:
            return None
        try:
            return await self.loyalty.summary(snapshot.client_id, snapshot.location_id)
        except Exception as exc:  # noqa: BLE001
            # the reminder still goes out without the points line
            _LOGGER.warning(
                "Loyalty summary unavailable for client %s: %s", snapshot.client_id, exc
            )
            return None

    @staticmethod
    def build_payload(snapshot: AppointmentSnapshot, loyalty_summary: Optional[str] = None) -> MessagePayload:
        return MessagePayload(
            appointment_id=snapshot.appointment_id,
            to_phone=snapshot.client_phone or "",
            client_name=snapshot.client_name,
            agent_name=snapshot.agent_name,
            agent_phone=snapshot.agent_phone,
            location_name=snapshot.location_name,
            location_phone=snapshot.location_phone,
            location_address=snapshot.location_address,
            date=snapshot.date,
            start_time=snapshot.start_time,
            end_time=snapshot.end_time,
            services=[svc.name for svc in snapshot.services],
            loyalty_summary=loyalty_summary,
        )

    async def prepare(
        self, reminder_type: ReminderType, snapshot: AppointmentSnapshot
    ) -> Tuple[TemplateKind, MessagePayload]:
        """Pick the template and build the payload once per reminder."""
        try:
            kind = template_for(ReminderType(reminder_type))
            payload = self.build_payload(snapshot, await self._loyalty_summary(snapshot))
        except ValueError as exc:
            raise PayloadError(f"appointment {snapshot.appointment_id}: {exc}") from exc
        return kind, payload

    async def send(self, kind: TemplateKind, payload: MessagePayload) -> DeliveryResult:
        if not payload.to_phone:
            return DeliveryResult.failed(f"appointment {payload.appointment_id} has no client phone")
        _LOGGER.info("Dispatching %s reminder for appointment %s", kind.value, payload.appointment_id)
        return await self.channel.send(kind, payload)

    async def dispatch(self, reminder_type: ReminderType, snapshot: AppointmentSnapshot) -> DeliveryResult:
        """Send one reminder; returns the channel's verdict unchanged."""
        if not snapshot.client_phone:
            return DeliveryResult.failed(f"appointment {snapshot.appointment_id} has no client phone")
        kind, payload = await self.prepare(reminder_type, snapshot)
        return await self.send(kind, payload)
