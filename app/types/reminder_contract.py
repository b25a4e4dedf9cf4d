"""Pydantic models and enums shared by the reminder engine.

The ledger (``db.reminders``), the selector, the dispatcher and the
orchestrator all speak in these types so none of them has to know about
SQLAlchemy rows or channel-specific payloads.
"""

from __future__ import annotations

import enum
import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class ReminderType(str, enum.Enum):
    DAY_BEFORE = "day_before"
    NEAR_TIME = "near_time"
    PRESCHEDULED = "prescheduled"


class ReminderStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    PROCESSING = "processing"  # claimed by exactly one run
    SENT = "sent"
    FAILED = "failed"
    PERMANENTLY_FAILED = "permanently_failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ReminderStatus.SENT, ReminderStatus.PERMANENTLY_FAILED)


class TemplateKind(str, enum.Enum):
    DAY_BEFORE = "day_before"
    NEAR_TIME = "near_time"


def template_for(reminder_type: ReminderType) -> TemplateKind:
    """``day_before`` has its own template; everything else is a near-time nudge."""
    if reminder_type == ReminderType.DAY_BEFORE:
        return TemplateKind.DAY_BEFORE
    return TemplateKind.NEAR_TIME


class _AlreadyExists:
    """Sentinel returned by ``create_record`` when the ledger row exists."""

    _instance: Optional["_AlreadyExists"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ALREADY_EXISTS"


ALREADY_EXISTS = _AlreadyExists()


# ──────────────────────────────
# Appointment projection
# ──────────────────────────────


class ServiceItem(BaseModel):
    id: int
    name: str


class AppointmentSnapshot(BaseModel):
    """Read-only view of a booked appointment plus what a message needs."""

    appointment_id: int
    date: dt.date
    start_time: dt.time
    end_time: Optional[dt.time] = None
    status: str

    location_id: int
    location_name: str = ""
    location_phone: Optional[str] = None
    location_address: Optional[str] = None

    client_id: int
    client_name: str = ""
    client_phone: Optional[str] = None

    agent_id: Optional[int] = None
    agent_name: str = ""
    agent_phone: Optional[str] = None

    services: List[ServiceItem] = Field(default_factory=list)

    @field_validator("client_name", "agent_name", "location_name", mode="before")
    def _strip_names(cls, v):  # noqa: N805
        return (v or "").strip()


class ClaimedReminder(BaseModel):
    """A prescheduled ledger row reserved for this run."""

    record_id: int
    type: ReminderType
    snapshot: AppointmentSnapshot


# ──────────────────────────────
# Delivery
# ──────────────────────────────


class MessagePayload(BaseModel):
    """Channel-agnostic content of a reminder message."""

    appointment_id: int
    to_phone: str
    client_name: str
    agent_name: str
    agent_phone: Optional[str] = None
    location_name: str
    location_phone: Optional[str] = None
    location_address: Optional[str] = None
    date: dt.date
    start_time: dt.time
    end_time: Optional[dt.time] = None
    services: List[str] = Field(default_factory=list)
    loyalty_summary: Optional[str] = None


class DeliveryResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    body: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "DeliveryResult":
        return cls(success=False, error=error)


class DeliveryOutcome(BaseModel):
    """Final state reached by the retry controller for one record."""

    record_id: int
    status: ReminderStatus
    attempts: int
    message_id: Optional[str] = None
    error: Optional[str] = None


# ──────────────────────────────
# Orchestrator report
# ──────────────────────────────


class PassCounts(BaseModel):
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0


class CycleReport(BaseModel):
    prescheduled: PassCounts = Field(default_factory=PassCounts)
    day_before: PassCounts = Field(default_factory=PassCounts)
    near_time: PassCounts = Field(default_factory=PassCounts)

    @property
    def total_sent(self) -> int:
        return self.prescheduled.sent + self.day_before.sent + self.near_time.sent
