"""
Reminder orchestrator: one call runs the three eligibility passes.

Invoked by Celery beat (``app.workers.reminder.run_cycle``) or the CLI
(``python -m app.scripts.run_reminders``). Several invocations may overlap;
the ledger's unique key and claim keep each reminder to a single send.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List

from app.services import eligibility
from app.services.dispatcher import DeliveryDispatcher, LoyaltyPointsProvider, PayloadError
from app.services.quiet_hours import is_within_allowed_window, to_local, utcnow
from app.services.retry_controller import RetryController, Sleep
from app.types.reminder_contract import (
    ALREADY_EXISTS,
    AppointmentSnapshot,
    ClaimedReminder,
    CycleReport,
    PassCounts,
    ReminderStatus,
    ReminderType,
)
from app.utils.channel import NotificationChannel
from config import settings
from db import reminders as ledger

_LOGGER = logging.getLogger(__name__)


class ReminderOrchestrator:
    def __init__(
        self,
        channel: NotificationChannel,
        loyalty: LoyaltyPointsProvider | None = None,
        item_delay: float | None = None,
        sleep: Sleep = asyncio.sleep,
        max_attempts: int | None = None,
    ):
        self.dispatcher = DeliveryDispatcher(channel, loyalty)
        self.retry = RetryController(self.dispatcher, max_attempts=max_attempts, sleep=sleep)
        self.item_delay = settings.REMINDER_ITEM_DELAY_SECONDS if item_delay is None else item_delay
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    async def run_cycle(self, now: datetime | None = None) -> CycleReport:
        now = to_local(now or utcnow())
        _LOGGER.info("Reminder cycle started at %s", now.isoformat())

        report = CycleReport(
            prescheduled=await self.process_prescheduled(now),
            day_before=await self.process_day_before(now),
            near_time=await self.process_near_time(now),
        )

        _LOGGER.info(
            "Reminder cycle finished: prescheduled=%s day_before=%s near_time=%s",
            report.prescheduled.model_dump(), report.day_before.model_dump(), report.near_time.model_dump(),
        )
        return report

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------
    async def process_prescheduled(self, now: datetime) -> PassCounts:
        if not self._gate("prescheduled", now):
            return PassCounts(skipped=1)
        claimed = await eligibility.claim_due_prescheduled(now)
        return await self._run_items("prescheduled", claimed, self._deliver_claimed)

    async def process_day_before(self, now: datetime) -> PassCounts:
        if not self._gate("day_before", now):
            return PassCounts(skipped=1)
        candidates = await eligibility.select_day_before(now)
        return await self._run_items(
            "day_before", candidates, lambda snap: self._deliver_new(ReminderType.DAY_BEFORE, snap)
        )

    async def process_near_time(self, now: datetime) -> PassCounts:
        if not self._gate("near_time", now):
            return PassCounts(skipped=1)
        candidates = await eligibility.select_near_time(now)
        return await self._run_items(
            "near_time", candidates, lambda snap: self._deliver_new(ReminderType.NEAR_TIME, snap)
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _gate(pass_name: str, now: datetime) -> bool:
        if is_within_allowed_window(now):
            return True
        _LOGGER.info(
            "Outside allowed hours (%dh, allowed %dh-%dh); skipping %s pass",
            to_local(now).hour,
            settings.REMINDER_ALLOWED_START_HOUR,
            settings.REMINDER_ALLOWED_END_HOUR,
            pass_name,
        )
        return False

    async def _run_items(
        self,
        pass_name: str,
        items: List,
        handle: Callable[[object], Awaitable[str]],
    ) -> PassCounts:
        counts = PassCounts(processed=len(items))
        for index, item in enumerate(items):
            verdict = await handle(item)
            if verdict == "sent":
                counts.sent += 1
            elif verdict == "skipped":
                counts.skipped += 1
            else:
                counts.failed += 1
            if self.item_delay and index < len(items) - 1:
                await self._sleep(self.item_delay)

        _LOGGER.info(
            "Pass %s finished: processed=%d sent=%d failed=%d skipped=%d",
            pass_name, counts.processed, counts.sent, counts.failed, counts.skipped,
        )
        return counts

    async def _deliver_new(self, reminder_type: ReminderType, snapshot: AppointmentSnapshot) -> str:
        """Insert the ledger row, then deliver only if this run created it."""
        record_id = None
        try:
            if not snapshot.client_phone:
                _LOGGER.warning(
                    "Appointment %s has no client phone; no %s reminder",
                    snapshot.appointment_id, reminder_type.value,
                )
                return "skipped"

            record_id = await ledger.create_record(
                snapshot.appointment_id,
                snapshot.location_id,
                reminder_type,
                snapshot.client_phone,
            )
            if record_id is ALREADY_EXISTS:
                return "skipped"

            outcome = await self.retry.deliver(record_id, reminder_type, snapshot)
            return "sent" if outcome.status == ReminderStatus.SENT else "failed"
        except Exception as exc:  # noqa: BLE001
            return await self._item_failed(record_id, snapshot.appointment_id, exc)

    async def _deliver_claimed(self, claimed: ClaimedReminder) -> str:
        try:
            outcome = await self.retry.deliver(claimed.record_id, claimed.type, claimed.snapshot)
            return "sent" if outcome.status == ReminderStatus.SENT else "failed"
        except Exception as exc:  # noqa: BLE001
            return await self._item_failed(claimed.record_id, claimed.snapshot.appointment_id, exc)

    async def _item_failed(self, record_id, appointment_id: int, exc: Exception) -> str:
        _LOGGER.exception("Reminder for appointment %s failed: %s", appointment_id, exc)
        if record_id is not None and record_id is not ALREADY_EXISTS:
            try:
                await ledger.update_status(
                    record_id,
                    ReminderStatus.FAILED,
                    error=repr(exc),
                    # a PayloadError never reached the channel
                    count_attempt=not isinstance(exc, PayloadError),
                )
            except Exception:  # noqa: BLE001
                _LOGGER.exception("Could not record failure for reminder %s", record_id)
        return "failed"
