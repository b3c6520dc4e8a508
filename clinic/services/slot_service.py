from datetime import date, datetime, timedelta

from clinic.core.errors import InvalidArgument
from clinic.repositories.appointment_repository import AppointmentRepository
from clinic.scheduling.intervals import Interval, gaps, split
from clinic.scheduling.working_hours import get_schedule
from clinic.services.availability_service import get_dentist, pending_appointments_near


async def compute_available_slots(
    repo: AppointmentRepository, dentist_id: int, d: date, treatment_duration: int
) -> list[Interval]:
    """Free, back-to-back slots of ``treatment_duration`` minutes for the dentist on ``d``.

    Busy time is the break plus every pending appointment of the day. Each free
    gap of the working window is cut from its start into consecutive slots; a
    remainder shorter than one slot is dropped. Slots come out in chronological
    order and may abut busy time on either side.
    """
    if treatment_duration <= 0:
        raise InvalidArgument("Treatment duration must be a positive number of minutes")
    dentist = await get_dentist(repo, dentist_id)
    schedule = get_schedule(dentist, d.weekday())
    if schedule is None:
        return []

    window = schedule.window(d)
    day = Interval(datetime(d.year, d.month, d.day), datetime(d.year, d.month, d.day) + timedelta(days=1))
    busy: list[Interval] = []
    for appointment in await pending_appointments_near(repo, dentist_id, day):
        clipped = appointment.interval.clip(day)
        if clipped is not None:
            busy.append(clipped)
    pause = schedule.break_window(d)
    if pause is not None:
        busy.append(pause)

    step = timedelta(minutes=treatment_duration)
    slots: list[Interval] = []
    for free in gaps(window, busy):
        slots.extend(split(free, step))
    return slots
