"""Celery application instance for the reminder engine.

Start a worker and the beat scheduler with:
    celery -A app.celery_app worker -Q reminder -l info --concurrency=2
    celery -A app.celery_app beat -l info
"""

from celery import Celery
from celery.schedules import crontab

from config import settings

BROKER_URL = settings.REDIS_URL

celery_app = Celery("salon_reminders", broker=BROKER_URL, backend=BROKER_URL)

# Global task settings
celery_app.conf.task_acks_late = True
celery_app.conf.task_reject_on_worker_lost = True
celery_app.conf.timezone = settings.REMINDER_TIMEZONE

celery_app.conf.task_routes = {
    "app.workers.reminder.run_cycle": {"queue": "reminder"},
}

# Beat schedule: one reminder cycle at the top of every hour
celery_app.conf.beat_schedule = {
    "dispatch-appointment-reminders": {
        "task": "app.workers.reminder.run_cycle",
        "schedule": crontab(minute=0),
    }
}

# --- Ensure tasks are registered ---
import app.workers.reminder  # noqa: E402,F401
