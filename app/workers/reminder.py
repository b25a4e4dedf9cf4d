"""Celery task that runs one reminder cycle."""

from __future__ import annotations

import asyncio
import logging

from app.celery_app import celery_app
from app.services.orchestrator import ReminderOrchestrator
from app.utils.channel import build_channel
import db

_LOGGER = logging.getLogger(__name__)


async def _run_cycle() -> dict:
    orchestrator = ReminderOrchestrator(build_channel())
    try:
        report = await orchestrator.run_cycle()
    finally:
        # each asyncio.run gets a fresh loop; pooled connections must not outlive it
        await db.dispose_engine()
    return report.model_dump()


@celery_app.task(name="app.workers.reminder.run_cycle", bind=True)
def run_cycle(self):  # noqa: D401
    """Run prescheduled, day-before and near-time passes once.

    Selection or claim errors are re-raised so the failure shows up in
    Celery's monitoring; per-reminder failures are already absorbed in
    the ledger.
    """
    try:
        result = asyncio.run(_run_cycle())
    except Exception:  # noqa: BLE001
        _LOGGER.exception("Reminder cycle failed")
        raise
    _LOGGER.info("Reminder cycle result: %s", result)
    return result
