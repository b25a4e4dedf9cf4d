"""
Bounded retry around the dispatcher.

    ATTEMPTING(n) --success--> SENT
    ATTEMPTING(n) --failure, n < max--> wait 2**n s --> ATTEMPTING(n+1)
    ATTEMPTING(n) --failure, n == max--> PERMANENTLY_FAILED

Every attempt is written to the ledger before the next wait so the
``attempts`` column matches reality even if the process dies mid-sequence.
The wait is an asyncio sleep: other tasks on the loop keep running.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from app.services.dispatcher import DeliveryDispatcher
from app.types.reminder_contract import (
    AppointmentSnapshot,
    DeliveryOutcome,
    DeliveryResult,
    ReminderStatus,
    ReminderType,
)
from config import settings
from db import reminders as ledger

_LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def _delivery_failed(result: DeliveryResult) -> bool:
    return not result.success


def _log_backoff(retry_state: RetryCallState) -> None:
    _LOGGER.info(
        "Attempt %d failed, retrying in %.0fs",
        retry_state.attempt_number, retry_state.next_action.sleep,
    )


class RetryController:
    def __init__(
        self,
        dispatcher: DeliveryDispatcher,
        max_attempts: int | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.dispatcher = dispatcher
        self.max_attempts = max_attempts or settings.REMINDER_MAX_ATTEMPTS
        self._sleep = sleep

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            # 2s, 4s, 8s ...
            wait=wait_exponential(multiplier=2, exp_base=2),
            retry=retry_if_result(_delivery_failed),
            retry_error_callback=lambda state: state.outcome.result(),
            before_sleep=_log_backoff,
            sleep=self._sleep,
        )

    async def deliver(
        self,
        record_id: int,
        reminder_type: ReminderType,
        snapshot: AppointmentSnapshot,
    ) -> DeliveryOutcome:
        """Drive one ledger row to ``sent`` or ``permanently_failed``.

        Only call this for a row this run owns (fresh insert or claim).
        Exceptions from the dispatcher are not retried; they propagate.
        A ``PayloadError`` means the channel was never reached.
        """
        kind, payload = await self.dispatcher.prepare(reminder_type, snapshot)
        attempt = 0

        async def _attempt() -> DeliveryResult:
            nonlocal attempt
            attempt += 1
            _LOGGER.info("Reminder %s attempt %d/%d", record_id, attempt, self.max_attempts)
            result = await self.dispatcher.send(kind, payload)
            if result.success:
                await ledger.update_status(
                    record_id,
                    ReminderStatus.SENT,
                    message_id=result.message_id,
                    message_body=result.body,
                )
            else:
                status = (
                    ReminderStatus.PERMANENTLY_FAILED
                    if attempt >= self.max_attempts
                    else ReminderStatus.FAILED
                )
                await ledger.update_status(record_id, status, error=result.error)
            return result

        result = await self._retrying()(_attempt)

        if result.success:
            _LOGGER.info("Reminder %s sent after %d attempt(s)", record_id, attempt)
            return DeliveryOutcome(
                record_id=record_id,
                status=ReminderStatus.SENT,
                attempts=attempt,
                message_id=result.message_id,
            )

        _LOGGER.error(
            "Reminder %s permanently failed after %d attempt(s): %s",
            record_id, attempt, result.error,
        )
        return DeliveryOutcome(
            record_id=record_id,
            status=ReminderStatus.PERMANENTLY_FAILED,
            attempts=attempt,
            error=result.error,
        )
