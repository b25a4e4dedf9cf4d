from __future__ import annotations

import datetime as dt

from sqlalchemy import (
    Date, DateTime, ForeignKey, Index, Integer, String, Text, Time, UniqueConstraint, func
)
from sqlalchemy.orm import Mapped, mapped_column

from db.db import Base


# ──────────────────────────────────────────────────────────────────────
# Reminder ledger (owned by this service)
# ──────────────────────────────────────────────────────────────────────

class ReminderRecord(Base):
    __tablename__ = "reminder_records"

    id:                  Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    appointment_id:      Mapped[int] = mapped_column(Integer, nullable=False)
    location_id:         Mapped[int] = mapped_column(Integer, nullable=False)
    target_phone:        Mapped[str] = mapped_column(String(32), nullable=False)
    type:                Mapped[str] = mapped_column(String(32), nullable=False)
    status:              Mapped[str] = mapped_column(String(32), nullable=False, default="scheduled")
    attempts:            Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scheduled_send_time: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    sent_at:             Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    last_attempt_at:     Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    external_message_id: Mapped[str | None] = mapped_column(String(128))
    message_body:        Mapped[str | None] = mapped_column(Text)
    error_details:       Mapped[str | None] = mapped_column(Text)
    created_at:          Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at:          Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("appointment_id", "type", name="uq_reminder_records_appointment_type"),
        Index("ix_reminder_records_status_send_time", "status", "scheduled_send_time"),
        Index("ix_reminder_records_appointment", "appointment_id"),
        Index("ix_reminder_records_location", "location_id"),
    )


# ──────────────────────────────────────────────────────────────────────
# Booking subsystem tables (read-only here)
# ──────────────────────────────────────────────────────────────────────

class Location(Base):
    __tablename__ = "locations"

    id:      Mapped[int] = mapped_column(Integer, primary_key=True)
    name:    Mapped[str] = mapped_column(String(255))
    phone:   Mapped[str | None] = mapped_column(String(32))
    address: Mapped[str | None] = mapped_column(Text)


class Client(Base):
    __tablename__ = "clients"

    id:         Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str | None] = mapped_column(String(120))
    last_name:  Mapped[str | None] = mapped_column(String(120))
    phone:      Mapped[str | None] = mapped_column(String(32))


class Agent(Base):
    __tablename__ = "agents"

    id:         Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str | None] = mapped_column(String(120))
    last_name:  Mapped[str | None] = mapped_column(String(120))
    phone:      Mapped[str | None] = mapped_column(String(32))


class Service(Base):
    __tablename__ = "services"

    id:   Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255))


class Appointment(Base):
    __tablename__ = "appointments"

    id:          Mapped[int] = mapped_column(Integer, primary_key=True)
    client_id:   Mapped[int] = mapped_column(ForeignKey("clients.id"))
    agent_id:    Mapped[int | None] = mapped_column(ForeignKey("agents.id"))
    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id"))
    date:        Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time:  Mapped[dt.time] = mapped_column(Time, nullable=False)
    end_time:    Mapped[dt.time | None] = mapped_column(Time)
    status:      Mapped[str] = mapped_column(String(32), nullable=False)


class AppointmentService(Base):
    __tablename__ = "appointment_services"

    appointment_id: Mapped[int] = mapped_column(ForeignKey("appointments.id"), primary_key=True)
    service_id:     Mapped[int] = mapped_column(ForeignKey("services.id"), primary_key=True)
