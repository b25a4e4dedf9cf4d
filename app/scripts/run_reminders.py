from __future__ import annotations

"""Run one reminder cycle and exit.
Schedule it from cron / Railway every hour:
    python -m app.scripts.run_reminders
"""

import asyncio
import logging
import sys

from app.services.orchestrator import ReminderOrchestrator
from app.utils.channel import build_channel
from config import settings
import db


async def main() -> None:
    orchestrator = ReminderOrchestrator(build_channel())
    try:
        report = await orchestrator.run_cycle()
    finally:
        await db.dispose_engine()

    for name, counts in report.model_dump().items():
        print(
            f"[CRON] {name}: processed={counts['processed']} sent={counts['sent']} "
            f"failed={counts['failed']} skipped={counts['skipped']}"
        )


if __name__ == "__main__":  # pragma: no cover
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print("[CRON] run_reminders: job started")
    try:
        asyncio.run(main())
        print("[CRON] run_reminders: job completed successfully")
    except Exception as e:
        print(f"[CRON] run_reminders: job failed: {e}")
        sys.exit(1)
