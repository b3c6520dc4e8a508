import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("REMINDERS_ENABLED", "false")
os.environ.setdefault("CLINIC_TIMEZONE", "UTC")

from datetime import UTC, date, datetime
from decimal import Decimal
from itertools import count
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlmodel import SQLModel

import clinic.models  # noqa: F401 - register tables
from clinic.core.db import engine, init_db
from clinic.models.appointment import Appointment
from clinic.models.patient import Patient
from clinic.models.treatment import Treatment
from clinic.models.user import User, UserRole
from clinic.repositories.appointment_repository import AppointmentFilter
from clinic.services.notification_service import AppointmentNotice

# 2030-01-07 is a Monday
MONDAY = date(2030, 1, 7)
SATURDAY = date(2030, 1, 12)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class InMemoryAppointmentRepository:
    """Dict-backed AppointmentRepository for service tests."""

    def __init__(self) -> None:
        self.users: dict[int, User] = {}
        self.patients: dict[int, Patient] = {}
        self.treatments: dict[int, Treatment] = {}
        self.appointments: dict[int, Appointment] = {}
        self.locked: list[list[int]] = []
        self._ids = count(1)

    def add_dentist(self, working_hours: dict[str, Any] | None = None, status: str = "active") -> User:
        user = User(
            id=next(self._ids),
            email=f"dentist{len(self.users)}@smiles.com",
            first_name="Ana",
            last_name="Molar",
            role=UserRole.DENTIST.value,
            hashed_password="x",
            working_hours=working_hours,
            status=status,
        )
        self.users[user.id] = user
        return user

    def add_user(self, role: UserRole) -> User:
        user = User(
            id=next(self._ids),
            email=f"{role.value}{len(self.users)}@smiles.com",
            first_name="Sam",
            last_name="Desk",
            role=role.value,
            hashed_password="x",
        )
        self.users[user.id] = user
        return user

    def add_patient(self, email: str | None = "patient@mail.com") -> Patient:
        patient = Patient(id=next(self._ids), first_name="Luis", last_name="Perez", email=email)
        self.patients[patient.id] = patient
        return patient

    def add_treatment(self, duration: int = 30, status: str = "active") -> Treatment:
        treatment = Treatment(
            id=next(self._ids), name=f"Treatment {duration}", cost=Decimal("40.00"), duration=duration, status=status
        )
        self.treatments[treatment.id] = treatment
        return treatment

    def add_appointment(self, dentist: User, start: datetime, duration: int, status: str = "pending") -> Appointment:
        appointment = Appointment(
            id=next(self._ids),
            patient_id=0,
            dentist_id=dentist.id,
            treatment_id=0,
            date=start,
            duration=duration,
            status=status,
        )
        self.appointments[appointment.id] = appointment
        return appointment

    async def get_user(self, user_id: int) -> User | None:
        return self.users.get(user_id)

    async def get_patient(self, patient_id: int) -> Patient | None:
        return self.patients.get(patient_id)

    async def get_treatment(self, treatment_id: int) -> Treatment | None:
        return self.treatments.get(treatment_id)

    async def get_appointment(self, appointment_id: int) -> Appointment | None:
        return self.appointments.get(appointment_id)

    async def find_appointments(self, filter: AppointmentFilter) -> list[Appointment]:
        found = [a for a in self.appointments.values() if filter.matches(a)]
        return sorted(found, key=lambda a: (a.date, a.id))

    async def page_appointments(self, filter: AppointmentFilter, offset: int, limit: int) -> tuple[list[Appointment], int]:
        found = await self.find_appointments(filter)
        return found[offset : offset + limit], len(found)

    async def create_appointment(self, data: dict[str, Any]) -> Appointment:
        appointment = Appointment(id=next(self._ids), **data)
        self.appointments[appointment.id] = appointment
        return appointment

    async def update_appointment(self, appointment: Appointment, data: dict[str, Any]) -> Appointment:
        for key, value in data.items():
            setattr(appointment, key, value)
        appointment.updated_at = datetime.now(UTC).replace(tzinfo=None)
        return appointment

    async def delete_appointment(self, appointment: Appointment) -> None:
        self.appointments.pop(appointment.id, None)

    async def lock_dentists(self, dentist_ids: list[int]) -> None:
        self.locked.append(sorted(set(dentist_ids)))


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.notices: list[AppointmentNotice] = []

    def notify(self, notice: AppointmentNotice) -> None:
        if self.fail:
            raise RuntimeError("mail server down")
        self.notices.append(notice)

    @property
    def kinds(self) -> list[str]:
        return [n.kind.value for n in self.notices]


@pytest.fixture
def repo() -> InMemoryAppointmentRepository:
    return InMemoryAppointmentRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
async def database():
    await init_db()
    yield
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def client(database):
    from clinic.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
