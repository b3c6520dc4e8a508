from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.core.errors import Conflict, InvalidState, NotFound
from clinic.models.appointment import Appointment, AppointmentStatus
from clinic.models.patient import Patient, PatientCreate, PatientUpdate
from clinic.models.treatment import Treatment
from clinic.services.availability_service import to_clinic_time

_SORTABLE = {"created_at", "first_name", "last_name", "last_visit"}


@dataclass(frozen=True)
class PatientStats:
    total_appointments: int
    total_spent: Decimal
    last_visit: datetime | None


async def get_patient(session: AsyncSession, patient_id: int) -> Patient:
    patient = await session.get(Patient, patient_id)
    if patient is None:
        raise NotFound(f"Patient {patient_id} not found")
    return patient


async def list_patients(
    session: AsyncSession,
    search: str | None = None,
    sort_by: str = "created_at",
    descending: bool = True,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Patient], int]:
    q = select(Patient)
    if search:
        pattern = f"%{search}%"
        q = q.where(
            or_(
                Patient.first_name.ilike(pattern),
                Patient.last_name.ilike(pattern),
                Patient.email.ilike(pattern),
                Patient.dni.ilike(pattern),
            )
        )
    column = getattr(Patient, sort_by if sort_by in _SORTABLE else "created_at")
    total = await session.scalar(select(func.count()).select_from(q.subquery()))
    result = await session.execute(
        q.order_by(column.desc() if descending else column.asc(), Patient.id).offset((page - 1) * limit).limit(limit)
    )
    return list(result.scalars().all()), total or 0


async def _ensure_unique(
    session: AsyncSession, email: str | None, dni: str | None, exclude_id: int | None = None
) -> None:
    clauses = []
    if email:
        clauses.append(func.lower(Patient.email) == email.lower())
    if dni:
        clauses.append(Patient.dni == dni)
    if not clauses:
        return
    q = select(Patient.id).where(or_(*clauses))
    if exclude_id is not None:
        q = q.where(Patient.id != exclude_id)
    if (await session.execute(q.limit(1))).first():
        raise Conflict("Patient already exists with this email or DNI")


async def create_patient(session: AsyncSession, data: PatientCreate) -> Patient:
    await _ensure_unique(session, data.email, data.dni)
    patient = Patient(**data.model_dump())
    session.add(patient)
    await session.flush()
    await session.refresh(patient)
    return patient


async def update_patient(session: AsyncSession, patient_id: int, data: PatientUpdate) -> Patient:
    patient = await get_patient(session, patient_id)
    changes = data.model_dump(exclude_unset=True)
    if "email" in changes or "dni" in changes:
        await _ensure_unique(session, changes.get("email"), changes.get("dni"), exclude_id=patient_id)
    for key, value in changes.items():
        setattr(patient, key, value)
    session.add(patient)
    await session.flush()
    await session.refresh(patient)
    return patient


async def delete_patient(session: AsyncSession, patient_id: int) -> None:
    patient = await get_patient(session, patient_id)
    upcoming = await session.scalar(
        select(func.count())
        .select_from(Appointment)
        .where(
            Appointment.patient_id == patient_id,
            Appointment.status == AppointmentStatus.PENDING.value,
            Appointment.date > to_clinic_time(datetime.now(UTC)),
        )
    )
    if upcoming:
        raise InvalidState("Cannot delete patient with pending appointments")
    await session.delete(patient)
    await session.flush()


async def list_patient_appointments(session: AsyncSession, patient_id: int) -> list[Appointment]:
    """Appointment history of a patient, most recent first."""
    await get_patient(session, patient_id)
    result = await session.execute(
        select(Appointment)
        .where(Appointment.patient_id == patient_id)
        .order_by(Appointment.date.desc(), Appointment.id.desc())
    )
    return list(result.scalars().all())


async def get_patient_stats(session: AsyncSession, patient_id: int) -> PatientStats:
    await get_patient(session, patient_id)
    completed = (Appointment.patient_id == patient_id, Appointment.status == AppointmentStatus.COMPLETED.value)
    total = await session.scalar(
        select(func.count()).select_from(Appointment).where(Appointment.patient_id == patient_id)
    )
    spent = await session.scalar(
        select(func.coalesce(func.sum(Treatment.cost), 0))
        .select_from(Appointment)
        .join(Treatment, Treatment.id == Appointment.treatment_id)
        .where(*completed)
    )
    last_visit = await session.scalar(select(func.max(Appointment.date)).where(*completed))
    return PatientStats(
        total_appointments=total or 0,
        total_spent=Decimal(str(spent or 0)),
        last_visit=last_visit,
    )
