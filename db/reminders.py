"""
Reminder ledger: one row per (appointment, reminder type).

The ledger is the only state shared between concurrent reminder runs, so
every write here is a single statement whose outcome tells the caller
whether it won (insert-or-nothing, conditional update).
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Sequence

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.quiet_hours import to_local
from app.types.reminder_contract import ALREADY_EXISTS, ReminderStatus, ReminderType
from db.db import get_session
from db.models import Appointment, ReminderRecord

_LOGGER = logging.getLogger(__name__)

_ERROR_DETAILS_MAX = 4_000


def to_utc(value: datetime) -> datetime:
    """Normalise to aware UTC.

    Naive values are local wall-clock time, the same rule ``run_cycle`` and
    the selectors apply to ``now``.
    """
    return to_local(value).astimezone(timezone.utc)


def _insert_for(session: AsyncSession):
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"reminder ledger does not support the {dialect!r} dialect")


# ──────────────────────────────────────────────────────────────────────
# Create (idempotent)
# ──────────────────────────────────────────────────────────────────────

async def create_record(
    appointment_id: int,
    location_id: int,
    type: ReminderType,
    target_phone: str,
    scheduled_send_time: datetime | None = None,
):
    """Insert a ledger row and return its id, or ``ALREADY_EXISTS``.

    A conflict on (appointment_id, type) means another run (or an earlier
    one) already owns this reminder. It is returned as a value, never raised.
    """
    values = dict(
        appointment_id=appointment_id,
        location_id=location_id,
        type=ReminderType(type).value,
        target_phone=target_phone,
        status=ReminderStatus.SCHEDULED.value,
        attempts=0,
        scheduled_send_time=to_utc(scheduled_send_time) if scheduled_send_time else None,
    )
    async for s in get_session():
        insert = _insert_for(s)
        stmt = (
            insert(ReminderRecord)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["appointment_id", "type"])
            .returning(ReminderRecord.id)
        )
        res = await s.execute(stmt)
        new_id = res.scalar_one_or_none()
        await s.commit()

    if new_id is None:
        _LOGGER.info("Reminder %s already exists for appointment %s", values["type"], appointment_id)
        return ALREADY_EXISTS
    return new_id


# ──────────────────────────────────────────────────────────────────────
# Status transitions
# ──────────────────────────────────────────────────────────────────────

async def update_status(
    record_id: int,
    status: ReminderStatus,
    *,
    message_id: str | None = None,
    message_body: str | None = None,
    error: str | None = None,
    count_attempt: bool = True,
) -> None:
    """Record one delivery attempt. ``attempts`` is bumped in the same UPDATE.

    ``count_attempt=False`` records a status change that never reached the
    channel (bad payload, appointment gone) and leaves ``attempts`` alone.
    """
    status = ReminderStatus(status)
    values = {
        "status": status.value,
        "updated_at": func.now(),
    }
    if count_attempt:
        values["attempts"] = ReminderRecord.attempts + 1
        values["last_attempt_at"] = func.now()
    if status == ReminderStatus.SENT:
        values["sent_at"] = func.now()
        if message_id:
            values["external_message_id"] = message_id
        if message_body:
            values["message_body"] = message_body
    elif status in (ReminderStatus.FAILED, ReminderStatus.PERMANENTLY_FAILED):
        if error:
            values["error_details"] = error[:_ERROR_DETAILS_MAX]

    async for s in get_session():
        await s.execute(
            update(ReminderRecord)
            .where(ReminderRecord.id == record_id)
            .values(**values)
        )
        await s.commit()
    _LOGGER.debug("Reminder %s -> %s", record_id, status.value)


async def claim_records(
    record_ids: Sequence[int],
    appointment_status: str | None = None,
) -> list[int]:
    """Move still-``scheduled`` rows to ``processing`` and return the ids won.

    Two runs racing on the same ids each get a disjoint subset: the WHERE
    on status makes the second UPDATE match nothing. With
    ``appointment_status`` only rows whose appointment currently has that
    status are claimed; the rest stay ``scheduled``.
    """
    if not record_ids:
        return []
    conditions = [
        ReminderRecord.id.in_(list(record_ids)),
        ReminderRecord.status == ReminderStatus.SCHEDULED.value,
    ]
    if appointment_status is not None:
        conditions.append(
            ReminderRecord.appointment_id.in_(
                select(Appointment.id).where(Appointment.status == appointment_status)
            )
        )
    async for s in get_session():
        res = await s.execute(
            update(ReminderRecord)
            .where(*conditions)
            .values(status=ReminderStatus.PROCESSING.value, updated_at=func.now())
            .returning(ReminderRecord.id)
        )
        claimed = sorted(res.scalars().all())
        await s.commit()
    return claimed


# ──────────────────────────────────────────────────────────────────────
# Prescheduled reminders
# ──────────────────────────────────────────────────────────────────────

async def schedule_prescheduled(
    appointment_id: int,
    location_id: int,
    target_phone: str,
    send_at: datetime,
    now: datetime | None = None,
):
    """Register a one-off reminder to go out at ``send_at``.

    Returns the new id, ``ALREADY_EXISTS``, or ``None`` if ``send_at`` has
    already passed.
    """
    now = to_utc(now or datetime.now(timezone.utc))
    if to_utc(send_at) <= now:
        _LOGGER.info("Not scheduling reminder for appointment %s: %s is in the past", appointment_id, send_at)
        return None
    return await create_record(
        appointment_id,
        location_id,
        ReminderType.PRESCHEDULED,
        target_phone,
        scheduled_send_time=send_at,
    )


async def schedule_before_appointment(
    appointment_id: int,
    location_id: int,
    target_phone: str,
    appt_date: date,
    start_time: time,
    hours_before: float,
    now: datetime | None = None,
):
    """Schedule a reminder ``hours_before`` the appointment's local start.

    Date and start time are booking wall-clock values in the service time
    zone. Same results as ``schedule_prescheduled``: ``None`` when that
    moment has already passed.
    """
    starts_at = to_local(datetime.combine(appt_date, start_time))
    send_at = starts_at - timedelta(hours=hours_before)
    _LOGGER.info(
        "Reminder for appointment %s due %s (%sh before %s)",
        appointment_id, send_at.isoformat(), hours_before, starts_at.isoformat(),
    )
    return await schedule_prescheduled(appointment_id, location_id, target_phone, send_at, now=now)


async def reschedule_prescheduled(appointment_id: int, send_at: datetime) -> bool:
    """Move the send time of a prescheduled reminder that has not been picked up yet."""
    async for s in get_session():
        res = await s.execute(
            update(ReminderRecord)
            .where(
                ReminderRecord.appointment_id == appointment_id,
                ReminderRecord.type == ReminderType.PRESCHEDULED.value,
                ReminderRecord.status == ReminderStatus.SCHEDULED.value,
            )
            .values(scheduled_send_time=to_utc(send_at), updated_at=func.now())
        )
        updated = res.rowcount
        await s.commit()
    return updated > 0


# ──────────────────────────────────────────────────────────────────────
# Read helpers
# ──────────────────────────────────────────────────────────────────────

async def get_record(record_id: int) -> ReminderRecord | None:
    async for s in get_session():
        record = await s.get(ReminderRecord, record_id)
    return record


async def records_for_appointment(appointment_id: int) -> list[ReminderRecord]:
    async for s in get_session():
        res = await s.execute(
            select(ReminderRecord)
            .where(ReminderRecord.appointment_id == appointment_id)
            .order_by(ReminderRecord.id)
        )
        records = list(res.scalars().all())
    return records
