import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    # --- Database ---
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_PUBLIC_URL = os.environ.get("DATABASE_PUBLIC_URL")

    # --- Redis (Celery broker / result backend) ---
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

    # --- Notification channel ---
    # one of: "telnyx", "evolution", "log"
    NOTIFICATION_CHANNEL = os.environ.get("NOTIFICATION_CHANNEL", "log")

    # --- Telnyx (SMS) ---
    TELNYX_API_KEY = os.environ.get("TELNYX_API_KEY")
    TELNYX_FROM_NUMBER = os.environ.get("TELNYX_FROM_NUMBER")

    # --- Evolution API (WhatsApp) ---
    EVOLUTION_API_URL = os.environ.get("EVOLUTION_API_URL", "http://localhost:8080")
    EVOLUTION_API_KEY = os.environ.get("EVOLUTION_API_KEY")
    EVOLUTION_INSTANCE = os.environ.get("EVOLUTION_INSTANCE", "salon-reminders")
    EVOLUTION_TIMEOUT = float(os.environ.get("EVOLUTION_TIMEOUT", "10"))
    DEFAULT_COUNTRY_CODE = os.environ.get("DEFAULT_COUNTRY_CODE", "55")

    # --- Reminder policy ---
    REMINDER_TIMEZONE = os.environ.get("REMINDER_TIMEZONE", "America/Sao_Paulo")
    REMINDER_ALLOWED_START_HOUR = int(os.environ.get("REMINDER_ALLOWED_START_HOUR", "6"))
    REMINDER_ALLOWED_END_HOUR = int(os.environ.get("REMINDER_ALLOWED_END_HOUR", "23"))
    REMINDER_NEAR_TIME_WINDOW_MINUTES = int(os.environ.get("REMINDER_NEAR_TIME_WINDOW_MINUTES", "90"))
    REMINDER_MAX_ATTEMPTS = int(os.environ.get("REMINDER_MAX_ATTEMPTS", "3"))
    REMINDER_ITEM_DELAY_SECONDS = float(os.environ.get("REMINDER_ITEM_DELAY_SECONDS", "1"))
    REMINDER_PRESCHEDULED_BATCH = int(os.environ.get("REMINDER_PRESCHEDULED_BATCH", "100"))

    # --- Booking subsystem ---
    APPOINTMENT_APPROVED_STATUS = os.environ.get("APPOINTMENT_APPROVED_STATUS", "Approved")

    # --- Logging ---
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


settings = Settings()
