"""Persistence collaborator for the scheduling core.

The scheduling services only talk to an ``AppointmentRepository``; overlap and
lifecycle rules live in the services, not in the store.
"""
import asyncio
import weakref
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import event, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

from clinic.models.appointment import Appointment
from clinic.models.patient import Patient
from clinic.models.treatment import Treatment
from clinic.models.user import User

_HELD_LOCKS = "clinic.dentist_locks"

# asyncio locks belong to one event loop
_dentist_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[int, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def _dentist_lock(dentist_id: int) -> asyncio.Lock:
    locks = _dentist_locks.setdefault(asyncio.get_running_loop(), {})
    return locks.setdefault(dentist_id, asyncio.Lock())


def _release_dentist_locks(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is not None:
        return
    for lock in session.info.pop(_HELD_LOCKS, {}).values():
        lock.release()


@dataclass(frozen=True)
class AppointmentFilter:
    dentist_id: int | None = None
    patient_id: int | None = None
    status: str | None = None
    # Start-time bounds: starts_from <= date < starts_before
    starts_from: datetime | None = None
    starts_before: datetime | None = None
    exclude_id: int | None = None
    reminder_sent: bool | None = None
    search: str | None = None  # patient first/last name, case-insensitive

    def matches(self, appointment: Appointment) -> bool:
        """In-process equivalent of the SQL filter, without ``search``."""
        if self.dentist_id is not None and appointment.dentist_id != self.dentist_id:
            return False
        if self.patient_id is not None and appointment.patient_id != self.patient_id:
            return False
        if self.status is not None and appointment.status != self.status:
            return False
        if self.starts_from is not None and appointment.date < self.starts_from:
            return False
        if self.starts_before is not None and appointment.date >= self.starts_before:
            return False
        if self.exclude_id is not None and appointment.id == self.exclude_id:
            return False
        if self.reminder_sent is not None and appointment.reminder_sent != self.reminder_sent:
            return False
        return True


class AppointmentRepository(Protocol):
    async def get_user(self, user_id: int) -> User | None: ...

    async def get_patient(self, patient_id: int) -> Patient | None: ...

    async def get_treatment(self, treatment_id: int) -> Treatment | None: ...

    async def get_appointment(self, appointment_id: int) -> Appointment | None: ...

    async def find_appointments(self, filter: AppointmentFilter) -> list[Appointment]: ...

    async def page_appointments(
        self, filter: AppointmentFilter, offset: int, limit: int
    ) -> tuple[list[Appointment], int]: ...

    async def create_appointment(self, data: dict[str, Any]) -> Appointment: ...

    async def update_appointment(self, appointment: Appointment, data: dict[str, Any]) -> Appointment: ...

    async def delete_appointment(self, appointment: Appointment) -> None: ...

    async def lock_dentists(self, dentist_ids: list[int]) -> None: ...


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class SQLAppointmentRepository:
    """AppointmentRepository over the request's AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_user(self, user_id: int) -> User | None:
        return await self.session.get(User, user_id)

    async def get_patient(self, patient_id: int) -> Patient | None:
        return await self.session.get(Patient, patient_id)

    async def get_treatment(self, treatment_id: int) -> Treatment | None:
        return await self.session.get(Treatment, treatment_id)

    async def get_appointment(self, appointment_id: int) -> Appointment | None:
        return await self.session.get(Appointment, appointment_id)

    def _query(self, filter: AppointmentFilter):
        q = select(Appointment)
        if filter.dentist_id is not None:
            q = q.where(Appointment.dentist_id == filter.dentist_id)
        if filter.patient_id is not None:
            q = q.where(Appointment.patient_id == filter.patient_id)
        if filter.status is not None:
            q = q.where(Appointment.status == filter.status)
        if filter.starts_from is not None:
            q = q.where(Appointment.date >= filter.starts_from)
        if filter.starts_before is not None:
            q = q.where(Appointment.date < filter.starts_before)
        if filter.exclude_id is not None:
            q = q.where(Appointment.id != filter.exclude_id)
        if filter.reminder_sent is not None:
            q = q.where(Appointment.reminder_sent == filter.reminder_sent)
        if filter.search:
            pattern = f"%{filter.search}%"
            q = q.join(Patient, Patient.id == Appointment.patient_id).where(
                or_(Patient.first_name.ilike(pattern), Patient.last_name.ilike(pattern))
            )
        return q

    async def find_appointments(self, filter: AppointmentFilter) -> list[Appointment]:
        result = await self.session.execute(self._query(filter).order_by(Appointment.date, Appointment.id))
        return list(result.scalars().all())

    async def page_appointments(
        self, filter: AppointmentFilter, offset: int, limit: int
    ) -> tuple[list[Appointment], int]:
        q = self._query(filter)
        total = await self.session.scalar(select(func.count()).select_from(q.subquery()))
        result = await self.session.execute(
            q.order_by(Appointment.date, Appointment.id).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def create_appointment(self, data: dict[str, Any]) -> Appointment:
        appointment = Appointment(**data)
        self.session.add(appointment)
        await self.session.flush()
        await self.session.refresh(appointment)
        return appointment

    async def update_appointment(self, appointment: Appointment, data: dict[str, Any]) -> Appointment:
        for key, value in data.items():
            setattr(appointment, key, value)
        appointment.updated_at = _utc_naive_now()
        self.session.add(appointment)
        await self.session.flush()
        await self.session.refresh(appointment)
        return appointment

    async def delete_appointment(self, appointment: Appointment) -> None:
        await self.session.delete(appointment)
        await self.session.flush()

    async def lock_dentists(self, dentist_ids: list[int]) -> None:
        """Serialise bookings per dentist until the session's transaction ends.

        Locks are taken in ascending id order so two bookings touching the same
        pair of dentists cannot deadlock. PostgreSQL row-locks the dentists'
        user rows with ``FOR UPDATE``. SQLite has no row locks and pysqlite
        only opens a transaction on the first write, so there each dentist
        gets an in-process lock followed by a no-op UPDATE, which takes the
        database write lock against other processes.
        """
        ids = sorted(set(dentist_ids))
        # Start the transaction the locks are tied to
        connection = await self.session.connection()
        if connection.dialect.name != "sqlite":
            for dentist_id in ids:
                await self.session.execute(select(User.id).where(User.id == dentist_id).with_for_update())
            return

        sync_session = self.session.sync_session
        if not event.contains(sync_session, "after_transaction_end", _release_dentist_locks):
            event.listen(sync_session, "after_transaction_end", _release_dentist_locks)
        held: dict[int, asyncio.Lock] = sync_session.info.setdefault(_HELD_LOCKS, {})
        for dentist_id in ids:
            if dentist_id not in held:
                lock = _dentist_lock(dentist_id)
                await lock.acquire()
                held[dentist_id] = lock
        for dentist_id in ids:
            await self.session.execute(
                update(User)
                .where(User.id == dentist_id)
                .values(id=User.id)
                .execution_options(synchronize_session=False)
            )
