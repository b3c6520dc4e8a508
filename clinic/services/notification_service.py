"""Notification collaborator for appointment lifecycle events.

Delivery is best effort: ``dispatch`` never raises, so a failed notification
can not undo a booking that has already been written.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from fastapi import BackgroundTasks

from clinic.models.appointment import Appointment, NotificationKind
from clinic.models.patient import Patient
from clinic.models.treatment import Treatment
from clinic.models.user import User
from clinic.services.email_service import send_appointment_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppointmentNotice:
    kind: NotificationKind
    appointment_id: int
    start: datetime
    duration: int
    patient_name: str
    patient_email: str | None
    dentist_name: str
    treatment_name: str
    cancellation_reason: str | None = None

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration)

    @classmethod
    def build(
        cls,
        kind: NotificationKind,
        appointment: Appointment,
        patient: Patient | None,
        dentist: User | None,
        treatment: Treatment | None,
    ) -> "AppointmentNotice":
        return cls(
            kind=kind,
            appointment_id=appointment.id,
            start=appointment.date,
            duration=appointment.duration,
            patient_name=patient.full_name if patient else "",
            patient_email=patient.email if patient else None,
            dentist_name=dentist.full_name if dentist else "",
            treatment_name=treatment.name if treatment else "",
            cancellation_reason=appointment.cancellation_reason,
        )


class Notifier(Protocol):
    def notify(self, notice: AppointmentNotice) -> None: ...


class EmailNotifier:
    """Sends patient emails, queued on FastAPI background tasks when available."""

    def __init__(self, background_tasks: BackgroundTasks | None = None) -> None:
        self.background_tasks = background_tasks

    def notify(self, notice: AppointmentNotice) -> None:
        if self.background_tasks is not None:
            self.background_tasks.add_task(send_appointment_email, notice)
        else:
            send_appointment_email(notice)


class QueueNotifier:
    """Collects notices for delivery after the surrounding transaction commits."""

    def __init__(self) -> None:
        self.pending: list[AppointmentNotice] = []

    def notify(self, notice: AppointmentNotice) -> None:
        self.pending.append(notice)


def dispatch(notifier: Notifier, notice: AppointmentNotice) -> bool:
    """Hand ``notice`` to ``notifier``; failures are logged and reported as False."""
    try:
        notifier.notify(notice)
    except Exception:
        logger.exception(
            "Failed to dispatch %s notification for appointment %s", notice.kind.value, notice.appointment_id
        )
        return False
    logger.info("Dispatched %s notification for appointment %s", notice.kind.value, notice.appointment_id)
    return True
