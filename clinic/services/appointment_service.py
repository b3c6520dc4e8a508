"""Appointment lifecycle: booking, rescheduling and status transitions.

    pending --cancel--> cancelled
    pending --complete--> completed
    pending --no-show--> no-show

Terminal states never transition again. Every change that affects timing runs
the availability check after locking the involved dentists, inside the same
transaction as the write.
"""
import logging
from datetime import datetime, timedelta

from clinic.core.errors import Conflict, InvalidArgument, InvalidState, NotFound
from clinic.models.appointment import Appointment, AppointmentPublic, AppointmentStatus, NotificationKind
from clinic.models.patient import Patient
from clinic.models.treatment import Treatment
from clinic.models.user import User
from clinic.repositories.appointment_repository import AppointmentFilter, AppointmentRepository
from clinic.services.availability_service import get_dentist, is_available, to_clinic_time
from clinic.services.notification_service import AppointmentNotice, Notifier, dispatch

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_REASON = "No reason provided"


def appointment_to_public(a: Appointment) -> AppointmentPublic:
    return AppointmentPublic(
        id=a.id,
        patient_id=a.patient_id,
        dentist_id=a.dentist_id,
        treatment_id=a.treatment_id,
        date=a.date,
        end=a.end,
        duration=a.duration,
        status=a.status,
        notes=a.notes,
        cancellation_reason=a.cancellation_reason,
        created_at=a.created_at,
        updated_at=a.updated_at,
    )


class AppointmentService:
    def __init__(self, repo: AppointmentRepository, notifier: Notifier) -> None:
        self.repo = repo
        self.notifier = notifier

    async def get(self, appointment_id: int) -> Appointment:
        appointment = await self.repo.get_appointment(appointment_id)
        if appointment is None:
            raise NotFound(f"Appointment {appointment_id} not found")
        return appointment

    async def list_appointments(
        self, filter: AppointmentFilter, page: int = 1, limit: int = 10
    ) -> tuple[list[Appointment], int]:
        if page < 1 or limit < 1:
            raise InvalidArgument("page and limit must be positive")
        return await self.repo.page_appointments(filter, (page - 1) * limit, limit)

    async def create(
        self,
        patient_id: int,
        dentist_id: int,
        treatment_id: int,
        start: datetime,
        notes: str | None = None,
    ) -> Appointment:
        patient = await self.repo.get_patient(patient_id)
        if patient is None:
            raise NotFound(f"Patient {patient_id} not found")
        treatment = await self.repo.get_treatment(treatment_id)
        if treatment is None:
            raise NotFound(f"Treatment {treatment_id} not found")
        if treatment.status != "active":
            raise InvalidArgument(f"Treatment {treatment_id} is not active")
        dentist = await get_dentist(self.repo, dentist_id)

        start = to_clinic_time(start)
        await self.repo.lock_dentists([dentist_id])
        if not await is_available(self.repo, dentist_id, start, treatment.duration):
            raise Conflict("Dentist is not available at this time")

        appointment = await self.repo.create_appointment(
            {
                "patient_id": patient_id,
                "dentist_id": dentist_id,
                "treatment_id": treatment_id,
                "date": start,
                "duration": treatment.duration,
                "notes": notes,
                "status": AppointmentStatus.PENDING.value,
            }
        )
        logger.info(
            "Booked appointment %s: dentist=%s patient=%s %s (+%d min)",
            appointment.id,
            dentist_id,
            patient_id,
            start,
            treatment.duration,
        )
        await self._notify(NotificationKind.CREATION, appointment, patient=patient, dentist=dentist, treatment=treatment)
        return appointment

    async def reschedule(
        self,
        appointment_id: int,
        new_start: datetime | None = None,
        new_dentist_id: int | None = None,
        notes: str | None = None,
    ) -> Appointment:
        appointment = await self.get(appointment_id)
        if not appointment.is_pending:
            raise InvalidState(f"Cannot update appointment with status: {appointment.status}")
        if new_start is None and new_dentist_id is None and notes is None:
            raise InvalidArgument("Nothing to update")

        changes: dict[str, object] = {}
        if notes is not None:
            changes["notes"] = notes
        timing_changed = new_start is not None or new_dentist_id is not None
        if timing_changed:
            dentist_id = new_dentist_id if new_dentist_id is not None else appointment.dentist_id
            start = to_clinic_time(new_start) if new_start is not None else appointment.date
            await self.repo.lock_dentists([appointment.dentist_id, dentist_id])
            if not await is_available(
                self.repo, dentist_id, start, appointment.duration, exclude_appointment_id=appointment.id
            ):
                raise Conflict("Dentist is not available at this time")
            changes.update(date=start, dentist_id=dentist_id, reminder_sent=False)

        appointment = await self.repo.update_appointment(appointment, changes)
        if timing_changed:
            logger.info(
                "Rescheduled appointment %s: dentist=%s %s", appointment.id, appointment.dentist_id, appointment.date
            )
            await self._notify(NotificationKind.UPDATE, appointment)
        return appointment

    async def cancel(self, appointment_id: int, reason: str | None = None) -> Appointment:
        appointment = await self.get(appointment_id)
        if appointment.status == AppointmentStatus.CANCELLED.value:
            raise Conflict("Appointment is already cancelled")
        if not appointment.is_pending:
            raise InvalidState(f"Cannot cancel appointment with status: {appointment.status}")
        appointment = await self.repo.update_appointment(
            appointment,
            {
                "status": AppointmentStatus.CANCELLED.value,
                "cancellation_reason": reason or DEFAULT_CANCELLATION_REASON,
            },
        )
        logger.info("Cancelled appointment %s", appointment.id)
        await self._notify(NotificationKind.CANCELLATION, appointment)
        return appointment

    async def complete(self, appointment_id: int, notes: str | None = None) -> Appointment:
        appointment = await self.get(appointment_id)
        if not appointment.is_pending:
            raise InvalidState(f"Cannot complete appointment with status: {appointment.status}")
        changes: dict[str, object] = {"status": AppointmentStatus.COMPLETED.value}
        if notes:
            changes["notes"] = notes
        appointment = await self.repo.update_appointment(appointment, changes)
        logger.info("Completed appointment %s", appointment.id)
        return appointment

    async def mark_no_show(self, appointment_id: int) -> Appointment:
        appointment = await self.get(appointment_id)
        if not appointment.is_pending:
            raise InvalidState(f"Cannot mark appointment with status {appointment.status} as no-show")
        appointment = await self.repo.update_appointment(appointment, {"status": AppointmentStatus.NO_SHOW.value})
        logger.info("Appointment %s marked as no-show", appointment.id)
        return appointment

    async def delete(self, appointment_id: int) -> None:
        """Administrative hard delete; the appointment's history is gone afterwards."""
        appointment = await self.get(appointment_id)
        await self.repo.delete_appointment(appointment)
        logger.warning("Deleted appointment %s", appointment_id)

    async def send_due_reminders(self, now: datetime, lead_hours: int) -> int:
        """Notify pending appointments starting within ``lead_hours`` that were not reminded yet."""
        now = to_clinic_time(now)
        due = await self.repo.find_appointments(
            AppointmentFilter(
                status=AppointmentStatus.PENDING.value,
                starts_from=now,
                starts_before=now + timedelta(hours=lead_hours),
                reminder_sent=False,
            )
        )
        for appointment in due:
            appointment = await self.repo.update_appointment(appointment, {"reminder_sent": True})
            await self._notify(NotificationKind.REMINDER, appointment)
        return len(due)

    async def _notify(
        self,
        kind: NotificationKind,
        appointment: Appointment,
        patient: Patient | None = None,
        dentist: User | None = None,
        treatment: Treatment | None = None,
    ) -> None:
        try:
            if patient is None:
                patient = await self.repo.get_patient(appointment.patient_id)
            if dentist is None:
                dentist = await self.repo.get_user(appointment.dentist_id)
            if treatment is None:
                treatment = await self.repo.get_treatment(appointment.treatment_id)
            notice = AppointmentNotice.build(kind, appointment, patient, dentist, treatment)
        except Exception:
            logger.exception("Could not build %s notification for appointment %s", kind.value, appointment.id)
            return
        dispatch(self.notifier, notice)
