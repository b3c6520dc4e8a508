"""Management reports over appointments, treatments and patients.

Date ranges are inclusive days. Revenue only counts completed appointments,
priced at the treatment's current cost. Day, week and month buckets are built
in Python so the same queries run on PostgreSQL and SQLite.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Literal

from sqlalchemy import case, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.core.errors import InvalidArgument
from clinic.models.appointment import Appointment, AppointmentStatus
from clinic.models.patient import Patient
from clinic.models.treatment import Treatment
from clinic.models.user import User

GroupBy = Literal["day", "week", "month"]
_GROUPINGS = ("day", "week", "month")

_CENTS = Decimal("0.01")
# Patients with an appointment in this window count as active
_ACTIVE_WINDOW = timedelta(days=183)


@dataclass(frozen=True)
class RevenueBucket:
    period: str
    appointment_count: int
    total_revenue: Decimal


@dataclass(frozen=True)
class RevenueReport:
    start_date: date
    end_date: date
    group_by: str
    buckets: list[RevenueBucket]
    total_revenue: Decimal
    total_appointments: int
    average_revenue_per_period: Decimal


@dataclass(frozen=True)
class DentistPerformance:
    dentist_id: int
    first_name: str
    last_name: str
    total_appointments: int
    completed_appointments: int
    cancelled_appointments: int
    no_show_appointments: int
    average_duration: float
    revenue: Decimal


@dataclass(frozen=True)
class TreatmentPopularity:
    treatment_id: int
    name: str
    cost: Decimal
    appointment_count: int
    total_revenue: Decimal


@dataclass(frozen=True)
class NewPatientsDay:
    day: date
    new_patients: int


@dataclass(frozen=True)
class NewPatientsReport:
    start_date: date
    end_date: date
    daily: list[NewPatientsDay]
    total_new_patients: int
    average_new_patients_per_day: float


@dataclass(frozen=True)
class DashboardStats:
    today_appointments: int
    monthly_revenue: Decimal
    active_patients: int
    pending_appointments: int


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(_CENTS)


def _range_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    if end < start:
        raise InvalidArgument("end_date must not be before start_date")
    return datetime.combine(start, time.min), datetime.combine(end + timedelta(days=1), time.min)


def period_key(when: datetime, group_by: GroupBy) -> str:
    """Bucket label: ``2030-01-07``, ISO week ``2030-W02`` or ``2030-01``."""
    if group_by == "day":
        return when.date().isoformat()
    if group_by == "week":
        year, week, _ = when.isocalendar()
        return f"{year}-W{week:02d}"
    return f"{when.year}-{when.month:02d}"


def _completed_between(lo: datetime, hi: datetime):
    return (
        Appointment.status == AppointmentStatus.COMPLETED.value,
        Appointment.date >= lo,
        Appointment.date < hi,
    )


async def revenue_report(session: AsyncSession, start: date, end: date, group_by: GroupBy = "day") -> RevenueReport:
    if group_by not in _GROUPINGS:
        raise InvalidArgument(f"Invalid group_by '{group_by}', expected day, week or month")
    lo, hi = _range_bounds(start, end)
    result = await session.execute(
        select(Appointment.date, Treatment.cost)
        .join(Treatment, Treatment.id == Appointment.treatment_id)
        .where(*_completed_between(lo, hi))
        .order_by(Appointment.date)
    )
    counts: dict[str, int] = {}
    revenue: dict[str, Decimal] = {}
    for when, cost in result.all():
        key = period_key(when, group_by)
        counts[key] = counts.get(key, 0) + 1
        revenue[key] = revenue.get(key, Decimal(0)) + _money(cost)
    buckets = [RevenueBucket(key, counts[key], revenue[key]) for key in counts]
    total = sum(revenue.values(), Decimal(0))
    return RevenueReport(
        start_date=start,
        end_date=end,
        group_by=group_by,
        buckets=buckets,
        total_revenue=_money(total),
        total_appointments=sum(counts.values()),
        average_revenue_per_period=_money(total / len(buckets)) if buckets else _money(0),
    )


async def dentist_performance_report(
    session: AsyncSession, start: date, end: date, dentist_id: int | None = None
) -> list[DentistPerformance]:
    lo, hi = _range_bounds(start, end)

    def with_status(status: AppointmentStatus):
        return func.sum(case((Appointment.status == status.value, 1), else_=0))

    q = (
        select(
            User.id,
            User.first_name,
            User.last_name,
            func.count(Appointment.id),
            with_status(AppointmentStatus.COMPLETED),
            with_status(AppointmentStatus.CANCELLED),
            with_status(AppointmentStatus.NO_SHOW),
            func.avg(Appointment.duration),
            func.sum(case((Appointment.status == AppointmentStatus.COMPLETED.value, Treatment.cost), else_=0)),
        )
        .select_from(Appointment)
        .join(User, User.id == Appointment.dentist_id)
        .join(Treatment, Treatment.id == Appointment.treatment_id)
        .where(Appointment.date >= lo, Appointment.date < hi)
        .group_by(User.id, User.first_name, User.last_name)
        .order_by(User.id)
    )
    if dentist_id is not None:
        q = q.where(Appointment.dentist_id == dentist_id)
    result = await session.execute(q)
    return [
        DentistPerformance(
            dentist_id=row[0],
            first_name=row[1],
            last_name=row[2],
            total_appointments=row[3],
            completed_appointments=int(row[4] or 0),
            cancelled_appointments=int(row[5] or 0),
            no_show_appointments=int(row[6] or 0),
            average_duration=round(float(row[7] or 0), 2),
            revenue=_money(row[8]),
        )
        for row in result.all()
    ]


async def popular_treatments_report(session: AsyncSession, start: date, end: date) -> list[TreatmentPopularity]:
    """Treatments by number of completed appointments, most booked first."""
    lo, hi = _range_bounds(start, end)
    appointment_count = func.count(Appointment.id).label("appointment_count")
    result = await session.execute(
        select(Treatment.id, Treatment.name, Treatment.cost, appointment_count)
        .select_from(Appointment)
        .join(Treatment, Treatment.id == Appointment.treatment_id)
        .where(*_completed_between(lo, hi))
        .group_by(Treatment.id, Treatment.name, Treatment.cost)
        .order_by(appointment_count.desc(), Treatment.name)
    )
    return [
        TreatmentPopularity(
            treatment_id=treatment_id,
            name=name,
            cost=_money(cost),
            appointment_count=n,
            total_revenue=_money(_money(cost) * n),
        )
        for treatment_id, name, cost, n in result.all()
    ]


async def new_patients_report(session: AsyncSession, start: date, end: date) -> NewPatientsReport:
    lo, hi = _range_bounds(start, end)
    result = await session.execute(
        select(Patient.created_at).where(Patient.created_at >= lo, Patient.created_at < hi).order_by(Patient.created_at)
    )
    per_day: dict[date, int] = {}
    for (created_at,) in result.all():
        per_day[created_at.date()] = per_day.get(created_at.date(), 0) + 1
    total = sum(per_day.values())
    return NewPatientsReport(
        start_date=start,
        end_date=end,
        daily=[NewPatientsDay(day, n) for day, n in per_day.items()],
        total_new_patients=total,
        average_new_patients_per_day=round(total / len(per_day), 2) if per_day else 0.0,
    )


async def dashboard_stats(session: AsyncSession, now: datetime) -> DashboardStats:
    """Front page figures as of ``now``, a naive clinic-local datetime."""
    day_start, day_end = _range_bounds(now.date(), now.date())
    month_start = datetime(now.year, now.month, 1)
    month_end = datetime(now.year + 1, 1, 1) if now.month == 12 else datetime(now.year, now.month + 1, 1)

    today = await session.scalar(
        select(func.count())
        .select_from(Appointment)
        .where(Appointment.date >= day_start, Appointment.date < day_end)
    )
    revenue = await session.scalar(
        select(func.coalesce(func.sum(Treatment.cost), 0))
        .select_from(Appointment)
        .join(Treatment, Treatment.id == Appointment.treatment_id)
        .where(*_completed_between(month_start, month_end))
    )
    active = await session.scalar(
        select(func.count(distinct(Appointment.patient_id))).where(Appointment.date >= now - _ACTIVE_WINDOW)
    )
    pending = await session.scalar(
        select(func.count())
        .select_from(Appointment)
        .where(Appointment.status == AppointmentStatus.PENDING.value, Appointment.date > now)
    )
    return DashboardStats(
        today_appointments=today or 0,
        monthly_revenue=_money(revenue),
        active_patients=active or 0,
        pending_appointments=pending or 0,
    )
