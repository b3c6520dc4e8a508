import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from pydantic import ValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.core.errors import Conflict, InvalidArgument, NotFound
from clinic.core.security import hash_password
from clinic.models.appointment import Appointment, AppointmentStatus
from clinic.models.treatment import Treatment
from clinic.models.user import User, UserCreate, UserPublic, UserStatus, UserUpdate
from clinic.scheduling.working_hours import WorkingHours, load_working_hours
from clinic.services.auth_service import get_user_by_email
from clinic.services.availability_service import to_clinic_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserStats:
    period_start: date
    period_end: date
    total_appointments: int
    completed_appointments: int
    cancelled_appointments: int
    revenue: Decimal


def user_to_public(user: User) -> UserPublic:
    return UserPublic(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=user.role,
        specialization=user.specialization,
        status=user.status,
        last_login=user.last_login,
    )


async def get_user(session: AsyncSession, user_id: int) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


async def list_users(
    session: AsyncSession,
    role: str | None = None,
    status: str | None = UserStatus.ACTIVE.value,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[User], int]:
    q = select(User)
    if role:
        q = q.where(User.role == role)
    if status:
        q = q.where(User.status == status)
    if search:
        pattern = f"%{search}%"
        q = q.where(or_(User.first_name.ilike(pattern), User.last_name.ilike(pattern), User.email.ilike(pattern)))
    total = await session.scalar(select(func.count()).select_from(q.subquery()))
    result = await session.execute(q.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit))
    return list(result.scalars().all()), total or 0


async def create_user(session: AsyncSession, data: UserCreate) -> User:
    if await get_user_by_email(session, data.email):
        raise Conflict("Email already in use")
    user = User(
        email=data.email,
        first_name=data.first_name,
        last_name=data.last_name,
        hashed_password=hash_password(data.password),
        role=data.role.value,
        specialization=data.specialization,
        working_hours=data.working_hours.to_json() if data.working_hours else None,
    )
    session.add(user)
    await session.flush()
    await session.refresh(user)
    logger.info("Created user %s with role %s", user.id, user.role)
    return user


async def update_user(session: AsyncSession, user_id: int, data: UserUpdate) -> User:
    user = await get_user(session, user_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "email" in changes and changes["email"].lower() != user.email.lower():
        if await get_user_by_email(session, changes["email"]):
            raise Conflict("Email already in use")
    if "role" in changes:
        changes["role"] = changes["role"].value
    for key, value in changes.items():
        setattr(user, key, value)
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user


async def deactivate_user(session: AsyncSession, user_id: int) -> User:
    user = await get_user(session, user_id)
    now = to_clinic_time(datetime.now(UTC))
    upcoming = await session.scalar(
        select(func.count())
        .select_from(Appointment)
        .where(
            Appointment.dentist_id == user_id,
            Appointment.status == AppointmentStatus.PENDING.value,
            Appointment.date > now,
        )
    )
    if upcoming:
        raise Conflict("Cannot deactivate user with pending appointments")
    user.status = UserStatus.INACTIVE.value
    session.add(user)
    await session.flush()
    logger.info("Deactivated user %s", user_id)
    return user


async def get_working_hours(session: AsyncSession, user_id: int) -> WorkingHours:
    user = await get_user(session, user_id)
    return load_working_hours(user.working_hours)


def parse_working_hours(raw: dict[str, Any]) -> WorkingHours:
    try:
        return WorkingHours.model_validate(raw)
    except ValidationError as e:
        errors = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise InvalidArgument(f"Invalid working hours: {errors}") from e


async def update_working_hours(session: AsyncSession, user_id: int, raw: dict[str, Any]) -> WorkingHours:
    user = await get_user(session, user_id)
    if not user.is_dentist:
        raise InvalidArgument("Working hours can only be set for dentists")
    hours = parse_working_hours(raw)
    # A new dict so the JSON column registers the change
    user.working_hours = hours.to_json()
    session.add(user)
    await session.flush()
    logger.info("Updated working hours of dentist %s", user_id)
    return hours


def _month_bounds(d: date) -> tuple[datetime, datetime]:
    start = datetime(d.year, d.month, 1)
    end = datetime(d.year + 1, 1, 1) if d.month == 12 else datetime(d.year, d.month + 1, 1)
    return start, end


async def get_user_stats(session: AsyncSession, user_id: int, today: date) -> UserStats:
    """Appointment counts and completed-treatment revenue for the month containing ``today``."""
    await get_user(session, user_id)
    start, end = _month_bounds(today)
    in_month = (Appointment.dentist_id == user_id, Appointment.date >= start, Appointment.date < end)

    async def count(status: str | None = None) -> int:
        q = select(func.count()).select_from(Appointment).where(*in_month)
        if status:
            q = q.where(Appointment.status == status)
        return await session.scalar(q) or 0

    revenue = await session.scalar(
        select(func.coalesce(func.sum(Treatment.cost), 0))
        .select_from(Appointment)
        .join(Treatment, Treatment.id == Appointment.treatment_id)
        .where(*in_month, Appointment.status == AppointmentStatus.COMPLETED.value)
    )
    return UserStats(
        period_start=start.date(),
        period_end=end.date(),
        total_appointments=await count(),
        completed_appointments=await count(AppointmentStatus.COMPLETED.value),
        cancelled_appointments=await count(AppointmentStatus.CANCELLED.value),
        revenue=Decimal(str(revenue or 0)),
    )
