"""
Eligibility selector: which appointments need which reminder right now.

Three passes share one projection of the booking tables:

* day-before  – appointments tomorrow (local) with no ``day_before`` row
* near-time   – appointments starting in [now, now + window) with no
                ``near_time`` row
* prescheduled – ledger rows already due, claimed atomically so two
                concurrent runs split the set instead of both sending it
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List

from sqlalchemy import and_, func, or_, select

from app.services.quiet_hours import to_local
from app.types.reminder_contract import (
    AppointmentSnapshot,
    ClaimedReminder,
    ReminderStatus,
    ReminderType,
    ServiceItem,
)
from config import settings
from db.db import get_session
from db.models import (
    Agent,
    Appointment,
    AppointmentService,
    Client,
    Location,
    ReminderRecord,
    Service,
)
from db.reminders import claim_records, to_utc, update_status

_LOGGER = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────
# Shared projection
# ──────────────────────────────────────────────────────────────────────────

def _full_name(first, last):
    return func.coalesce(first, "") + " " + func.coalesce(last, "")


def _snapshot_columns():
    return (
        Appointment.id.label("appointment_id"),
        Appointment.date.label("date"),
        Appointment.start_time.label("start_time"),
        Appointment.end_time.label("end_time"),
        Appointment.status.label("status"),
        Location.id.label("location_id"),
        Location.name.label("location_name"),
        Location.phone.label("location_phone"),
        Location.address.label("location_address"),
        Client.id.label("client_id"),
        _full_name(Client.first_name, Client.last_name).label("client_name"),
        Client.phone.label("client_phone"),
        Agent.id.label("agent_id"),
        _full_name(Agent.first_name, Agent.last_name).label("agent_name"),
        Agent.phone.label("agent_phone"),
    )


def _with_booking_joins(stmt):
    return (
        stmt.join(Client, Appointment.client_id == Client.id)
        .join(Location, Appointment.location_id == Location.id)
        .outerjoin(Agent, Appointment.agent_id == Agent.id)
    )


def _without_record(stmt, reminder_type: ReminderType):
    """Anti-join against the ledger for one reminder type."""
    return stmt.outerjoin(
        ReminderRecord,
        and_(
            ReminderRecord.appointment_id == Appointment.id,
            ReminderRecord.type == reminder_type.value,
        ),
    ).where(ReminderRecord.id.is_(None))


async def _attach_services(snapshots: List[AppointmentSnapshot]) -> List[AppointmentSnapshot]:
    if not snapshots:
        return snapshots
    ids = sorted({snap.appointment_id for snap in snapshots})
    by_appointment: Dict[int, List[ServiceItem]] = defaultdict(list)
    async for s in get_session():
        res = await s.execute(
            select(AppointmentService.appointment_id, Service.id, Service.name)
            .join(Service, AppointmentService.service_id == Service.id)
            .where(AppointmentService.appointment_id.in_(ids))
            .order_by(AppointmentService.appointment_id, Service.id)
        )
        for appointment_id, service_id, name in res.all():
            by_appointment[appointment_id].append(ServiceItem(id=service_id, name=name))
    for snap in snapshots:
        snap.services = list(by_appointment.get(snap.appointment_id, []))
    return snapshots


async def _fetch_snapshots(stmt) -> List[AppointmentSnapshot]:
    async for s in get_session():
        res = await s.execute(stmt)
        rows = res.mappings().all()
    snapshots = [AppointmentSnapshot.model_validate(dict(row)) for row in rows]
    return await _attach_services(snapshots)


# ──────────────────────────────────────────────────────────────────────────
# Day-before
# ──────────────────────────────────────────────────────────────────────────

def tomorrow_local(now: datetime) -> date:
    return to_local(now).date() + timedelta(days=1)


async def select_day_before(now: datetime) -> List[AppointmentSnapshot]:
    tomorrow = tomorrow_local(now)
    _LOGGER.info("Selecting day-before reminders for %s", tomorrow.isoformat())

    stmt = _without_record(
        _with_booking_joins(select(*_snapshot_columns()).select_from(Appointment)),
        ReminderType.DAY_BEFORE,
    ).where(
        Appointment.date == tomorrow,
        Appointment.status == settings.APPOINTMENT_APPROVED_STATUS,
    ).order_by(Appointment.id)

    snapshots = await _fetch_snapshots(stmt)
    _LOGGER.info("Found %d appointment(s) for day-before reminder", len(snapshots))
    return snapshots


# ──────────────────────────────────────────────────────────────────────────
# Near-time
# ──────────────────────────────────────────────────────────────────────────

def near_time_window(now: datetime) -> tuple[datetime, datetime]:
    """Half-open [now, now + window) in local time."""
    start = to_local(now)
    return start, start + timedelta(minutes=settings.REMINDER_NEAR_TIME_WINDOW_MINUTES)


def _starts_within(start: datetime, end: datetime):
    t0, t1 = start.time(), end.time()
    if start.date() == end.date():
        return and_(
            Appointment.date == start.date(),
            Appointment.start_time >= t0,
            Appointment.start_time < t1,
        )
    # window crosses local midnight
    return or_(
        and_(Appointment.date == start.date(), Appointment.start_time >= t0),
        and_(Appointment.date == end.date(), Appointment.start_time < t1),
    )


async def select_near_time(now: datetime) -> List[AppointmentSnapshot]:
    start, end = near_time_window(now)
    _LOGGER.info(
        "Selecting near-time reminders between %s and %s",
        start.strftime("%Y-%m-%d %H:%M"), end.strftime("%Y-%m-%d %H:%M"),
    )

    stmt = _without_record(
        _with_booking_joins(select(*_snapshot_columns()).select_from(Appointment)),
        ReminderType.NEAR_TIME,
    ).where(
        _starts_within(start, end),
        Appointment.status == settings.APPOINTMENT_APPROVED_STATUS,
    ).order_by(Appointment.id)

    snapshots = await _fetch_snapshots(stmt)
    _LOGGER.info("Found %d appointment(s) for near-time reminder", len(snapshots))
    return snapshots


# ──────────────────────────────────────────────────────────────────────────
# Prescheduled (claim)
# ──────────────────────────────────────────────────────────────────────────

async def _due_record_ids(now: datetime, limit: int) -> List[int]:
    async for s in get_session():
        res = await s.execute(
            select(ReminderRecord.id)
            .join(Appointment, Appointment.id == ReminderRecord.appointment_id)
            .where(
                ReminderRecord.status == ReminderStatus.SCHEDULED.value,
                ReminderRecord.scheduled_send_time.is_not(None),
                ReminderRecord.scheduled_send_time <= to_utc(now),
                Appointment.status == settings.APPOINTMENT_APPROVED_STATUS,
            )
            .order_by(ReminderRecord.id)
            .limit(limit)
        )
        ids = list(res.scalars().all())
    return ids


async def _claimed_snapshots(record_ids: Iterable[int]) -> List[ClaimedReminder]:
    stmt = _with_booking_joins(
        select(
            ReminderRecord.id.label("record_id"),
            ReminderRecord.type.label("record_type"),
            ReminderRecord.target_phone.label("target_phone"),
            *_snapshot_columns(),
        ).select_from(ReminderRecord).join(Appointment, Appointment.id == ReminderRecord.appointment_id)
    ).where(
        ReminderRecord.id.in_(list(record_ids)),
        Appointment.status == settings.APPOINTMENT_APPROVED_STATUS,
    ).order_by(ReminderRecord.id)

    async for s in get_session():
        res = await s.execute(stmt)
        rows = [dict(row) for row in res.mappings().all()]

    claimed: List[ClaimedReminder] = []
    snapshots: List[AppointmentSnapshot] = []
    for row in rows:
        record_id = row.pop("record_id")
        record_type = ReminderType(row.pop("record_type"))
        target_phone = row.pop("target_phone")
        if target_phone:
            row["client_phone"] = target_phone
        snap = AppointmentSnapshot.model_validate(row)
        snapshots.append(snap)
        claimed.append(ClaimedReminder(record_id=record_id, type=record_type, snapshot=snap))
    await _attach_services(snapshots)
    return claimed


async def _release_dropped(claimed_ids: List[int], claimed: List[ClaimedReminder]) -> None:
    """Fail claimed rows that no longer resolve to an approved booking.

    Covers appointments cancelled after the claim and missing client or
    location rows; without this they would sit in ``processing`` forever.
    """
    dropped = sorted(set(claimed_ids) - {c.record_id for c in claimed})
    if not dropped:
        return
    _LOGGER.warning("Claimed reminder(s) %s no longer match an approved appointment", dropped)
    for record_id in dropped:
        await update_status(
            record_id,
            ReminderStatus.FAILED,
            error="appointment not approved or booking rows missing at claim time",
            count_attempt=False,
        )


async def claim_due_prescheduled(now: datetime, limit: int | None = None) -> List[ClaimedReminder]:
    """Reserve due prescheduled rows for this run and return them.

    Rows another run claimed in between, or whose appointment stopped
    being approved, are left out.
    """
    limit = limit or settings.REMINDER_PRESCHEDULED_BATCH
    candidates = await _due_record_ids(now, limit)
    if not candidates:
        _LOGGER.info("No prescheduled reminders due")
        return []

    claimed_ids = await claim_records(candidates, appointment_status=settings.APPOINTMENT_APPROVED_STATUS)
    if len(claimed_ids) < len(candidates):
        _LOGGER.info(
            "%d of %d due reminder(s) claimed by another run or no longer approved",
            len(candidates) - len(claimed_ids), len(candidates),
        )
    if not claimed_ids:
        return []

    claimed = await _claimed_snapshots(claimed_ids)
    await _release_dropped(claimed_ids, claimed)
    _LOGGER.info("Claimed %d prescheduled reminder(s)", len(claimed))
    return claimed
