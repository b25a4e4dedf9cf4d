import asyncio
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

import db
from app.services.templates import render_message
from app.types.reminder_contract import AppointmentSnapshot, DeliveryResult, ServiceItem
from db.models import Agent, Appointment, AppointmentService, Client, Location, Service

SAO_PAULO = ZoneInfo("America/Sao_Paulo")

# Tuesday 10:00 local
NOW = datetime(2026, 3, 10, 10, 0, tzinfo=SAO_PAULO)


class FakeChannel:
    """Records every send; fails the first ``fail_times`` calls."""

    def __init__(self, fail_times=0, raise_for=None):
        self.fail_times = fail_times
        self.raise_for = set(raise_for or ())
        self.calls = 0
        self.sent = []

    async def send(self, template_kind, payload):
        self.calls += 1
        # give concurrent runs a chance to interleave
        await asyncio.sleep(0)
        if payload.to_phone in self.raise_for:
            raise RuntimeError(f"channel exploded for {payload.to_phone}")
        if self.calls <= self.fail_times:
            return DeliveryResult.failed(f"provider down (call {self.calls})")
        self.sent.append((template_kind, payload))
        return DeliveryResult(
            success=True,
            message_id=f"fake-{self.calls}",
            body=render_message(template_kind, payload),
        )


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


class BookingSeeder:
    """Writes rows into the booking tables the reminder engine reads."""

    LOCATION_ID = 1
    AGENT_ID = 1

    def __init__(self):
        self._next_id = 0

    async def setup(self):
        async for s in db.get_session():
            s.add_all([
                Location(id=self.LOCATION_ID, name="Downtown Salon", phone="+55 11 3333-0000", address="Rua Augusta, 100"),
                Agent(id=self.AGENT_ID, first_name="Ana", last_name="Souza", phone="+5511988880000"),
                Service(id=1, name="Haircut"),
                Service(id=2, name="Manicure"),
            ])
            await s.commit()

    async def appointment(
        self,
        day: date,
        start: time,
        *,
        end: time | None = None,
        status: str = "Approved",
        phone: str | None = "+5511999990000",
        first_name: str = "Maria",
        services=(1,),
    ) -> int:
        self._next_id += 1
        appt_id = self._next_id
        async for s in db.get_session():
            s.add(Client(id=appt_id, first_name=first_name, last_name="Silva", phone=phone))
            s.add(Appointment(
                id=appt_id,
                client_id=appt_id,
                agent_id=self.AGENT_ID,
                location_id=self.LOCATION_ID,
                date=day,
                start_time=start,
                end_time=end,
                status=status,
            ))
            for service_id in services:
                s.add(AppointmentService(appointment_id=appt_id, service_id=service_id))
            await s.commit()
        return appt_id


@pytest_asyncio.fixture
async def ledger_db(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'reminders.db'}")
    await db.dispose_engine()
    await db.create_all()
    yield
    await db.dispose_engine()


@pytest_asyncio.fixture
async def booking(ledger_db):
    seeder = BookingSeeder()
    await seeder.setup()
    return seeder


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_snapshot():
    def _make(**overrides):
        data = dict(
            appointment_id=42,
            date=date(2026, 3, 11),
            start_time=time(10, 0),
            end_time=time(11, 0),
            status="Approved",
            location_id=1,
            location_name="Downtown Salon",
            location_phone="+55 11 3333-0000",
            location_address="Rua Augusta, 100",
            client_id=7,
            client_name="Maria Silva",
            client_phone="+5511999990000",
            agent_id=1,
            agent_name="Ana Souza",
            agent_phone="+5511988880000",
            services=[ServiceItem(id=1, name="Haircut"), ServiceItem(id=2, name="Manicure")],
        )
        data.update(overrides)
        return AppointmentSnapshot(**data)

    return _make
