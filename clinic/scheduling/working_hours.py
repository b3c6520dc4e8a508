"""Weekly working-hours template of a dentist.

Working hours are stored on the dentist's user row as JSON keyed by lower-case
weekday name. A missing weekday means the dentist does not work that day, so
``{}`` is a dentist with no working days. A dentist who never configured
working hours (NULL column) gets ``DEFAULT_WORKING_HOURS``.
"""
from datetime import date, datetime, time
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from clinic.scheduling.intervals import Interval

# Index matches date.weekday()
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class DaySchedule(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    start: time
    end: time
    break_start: time | None = Field(default=None, validation_alias=AliasChoices("break_start", "breakStart"))
    break_end: time | None = Field(default=None, validation_alias=AliasChoices("break_end", "breakEnd"))

    @model_validator(mode="after")
    def _check_bounds(self) -> "DaySchedule":
        if self.start >= self.end:
            raise ValueError("start must be before end")
        if (self.break_start is None) != (self.break_end is None):
            raise ValueError("break_start and break_end must be given together")
        if self.break_start is not None and self.break_end is not None:
            if not (self.start <= self.break_start < self.break_end <= self.end):
                raise ValueError("break must lie inside working hours with break_start before break_end")
        return self

    def window(self, day: date) -> Interval:
        return Interval(datetime.combine(day, self.start), datetime.combine(day, self.end))

    def break_window(self, day: date) -> Interval | None:
        if self.break_start is None or self.break_end is None:
            return None
        return Interval(datetime.combine(day, self.break_start), datetime.combine(day, self.break_end))


class WorkingHours(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    monday: DaySchedule | None = None
    tuesday: DaySchedule | None = None
    wednesday: DaySchedule | None = None
    thursday: DaySchedule | None = None
    friday: DaySchedule | None = None
    saturday: DaySchedule | None = None
    sunday: DaySchedule | None = None

    def for_weekday(self, weekday: int) -> DaySchedule | None:
        return getattr(self, WEEKDAYS[weekday])

    def to_json(self) -> dict[str, Any]:
        """Serializable form stored on the user row; unavailable days are omitted."""
        return self.model_dump(mode="json", exclude_none=True)


_DEFAULT_DAY = DaySchedule(start=time(9, 0), end=time(18, 0), break_start=time(13, 0), break_end=time(14, 0))

DEFAULT_WORKING_HOURS = WorkingHours(
    monday=_DEFAULT_DAY,
    tuesday=_DEFAULT_DAY,
    wednesday=_DEFAULT_DAY,
    thursday=_DEFAULT_DAY,
    friday=_DEFAULT_DAY,
)


def load_working_hours(raw: dict[str, Any] | None) -> WorkingHours:
    # An empty mapping is a configured week with no working days
    if raw is None:
        return DEFAULT_WORKING_HOURS
    return WorkingHours.model_validate(raw)


def get_schedule(dentist: Any, weekday: int) -> DaySchedule | None:
    """Schedule of ``dentist`` on ``weekday`` (0 = Monday), or None when unavailable."""
    return load_working_hours(dentist.working_hours).for_weekday(weekday)
