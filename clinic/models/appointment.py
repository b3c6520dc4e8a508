from datetime import UTC, datetime, timedelta
from enum import Enum

from sqlalchemy import DateTime, Index
from sqlmodel import Field, SQLModel

from clinic.scheduling.intervals import Interval


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED.value, AppointmentStatus.CANCELLED.value, AppointmentStatus.NO_SHOW.value}
)


class NotificationKind(str, Enum):
    CREATION = "creation"
    UPDATE = "update"
    CANCELLATION = "cancellation"
    REMINDER = "reminder"


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    __table_args__ = (Index("ix_appointments_dentist_id_date", "dentist_id", "date"),)

    id: int | None = Field(default=None, primary_key=True)
    patient_id: int = Field(foreign_key="patients.id", index=True)
    dentist_id: int = Field(foreign_key="users.id")
    treatment_id: int = Field(foreign_key="treatments.id", index=True)
    # Clinic wall-clock start time
    date: datetime = Field(sa_type=DateTime)
    duration: int  # minutes, copied from the treatment at booking time
    status: str = Field(default=AppointmentStatus.PENDING.value, index=True, max_length=16)
    notes: str | None = None
    cancellation_reason: str | None = None
    reminder_sent: bool = False
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime)

    @property
    def end(self) -> datetime:
        return self.date + timedelta(minutes=self.duration)

    @property
    def interval(self) -> Interval:
        return Interval(self.date, self.end)

    @property
    def is_pending(self) -> bool:
        return self.status == AppointmentStatus.PENDING.value


class AppointmentPublic(SQLModel):
    id: int
    patient_id: int
    dentist_id: int
    treatment_id: int
    date: datetime
    end: datetime
    duration: int
    status: str
    notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime
