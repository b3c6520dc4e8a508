import logging
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from clinic.core.config import settings
from clinic.core.errors import InvalidArgument, NotFound
from clinic.models.appointment import Appointment, AppointmentStatus
from clinic.models.user import User, UserStatus
from clinic.repositories.appointment_repository import AppointmentFilter, AppointmentRepository
from clinic.scheduling.intervals import Interval
from clinic.scheduling.working_hours import get_schedule

logger = logging.getLogger(__name__)

# Pending appointments never span midnight, so anything overlapping a window
# starts at most one day before it.
_LOOKBACK = timedelta(days=1)


def to_clinic_time(dt: datetime) -> datetime:
    """Naive wall-clock time in the clinic time zone."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(ZoneInfo(settings.clinic_timezone)).replace(tzinfo=None)


async def get_dentist(repo: AppointmentRepository, dentist_id: int) -> User:
    dentist = await repo.get_user(dentist_id)
    if dentist is None or not dentist.is_dentist or dentist.status != UserStatus.ACTIVE.value:
        raise NotFound(f"Dentist {dentist_id} not found")
    return dentist


def within_working_hours(dentist: User, candidate: Interval) -> bool:
    day = candidate.start.date()
    schedule = get_schedule(dentist, day.weekday())
    if schedule is None:
        return False
    # Also rejects candidates that run past midnight
    if not schedule.window(day).contains(candidate):
        return False
    pause = schedule.break_window(day)
    return pause is None or not pause.overlaps(candidate)


def find_conflicts(candidate: Interval, appointments: list[Appointment]) -> list[Appointment]:
    return [a for a in appointments if a.is_pending and a.interval.overlaps(candidate)]


async def pending_appointments_near(
    repo: AppointmentRepository,
    dentist_id: int,
    window: Interval,
    exclude_appointment_id: int | None = None,
) -> list[Appointment]:
    """Pending appointments of the dentist that may intersect ``window``."""
    return await repo.find_appointments(
        AppointmentFilter(
            dentist_id=dentist_id,
            status=AppointmentStatus.PENDING.value,
            starts_from=window.start - _LOOKBACK,
            starts_before=window.end,
            exclude_id=exclude_appointment_id,
        )
    )


async def is_available(
    repo: AppointmentRepository,
    dentist_id: int,
    candidate_start: datetime,
    candidate_duration: int,
    exclude_appointment_id: int | None = None,
) -> bool:
    """True when the dentist can take ``[start, start + duration)``.

    The candidate must fit inside the weekday's working hours, stay clear of the
    break and not overlap any other pending appointment of the dentist. Touching
    endpoints do not count as overlap. ``exclude_appointment_id`` lets a
    reschedule ignore the appointment's own current interval.
    """
    if candidate_duration <= 0:
        raise InvalidArgument("Duration must be a positive number of minutes")
    dentist = await get_dentist(repo, dentist_id)
    start = to_clinic_time(candidate_start)
    candidate = Interval(start, start + timedelta(minutes=candidate_duration))
    if not within_working_hours(dentist, candidate):
        logger.debug("Dentist %s: %s-%s outside working hours", dentist_id, candidate.start, candidate.end)
        return False
    existing = await pending_appointments_near(repo, dentist_id, candidate, exclude_appointment_id)
    conflicts = find_conflicts(candidate, existing)
    if conflicts:
        logger.debug(
            "Dentist %s: %s-%s conflicts with appointment(s) %s",
            dentist_id,
            candidate.start,
            candidate.end,
            [a.id for a in conflicts],
        )
        return False
    return True


async def check_treatment_availability(
    repo: AppointmentRepository,
    dentist_id: int,
    candidate_start: datetime,
    treatment_id: int,
    exclude_appointment_id: int | None = None,
) -> bool:
    """is_available with the duration taken from the treatment catalog."""
    treatment = await repo.get_treatment(treatment_id)
    if treatment is None:
        raise NotFound(f"Treatment {treatment_id} not found")
    return await is_available(repo, dentist_id, candidate_start, treatment.duration, exclude_appointment_id)
