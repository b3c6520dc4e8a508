from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from clinic.core.db import async_session_maker
from clinic.models.appointment import Appointment, NotificationKind
from clinic.models.patient import Patient
from clinic.models.treatment import Treatment
from clinic.models.user import User
from clinic.services import email_service
from clinic.services.email_service import build_appointment_html, send_appointment_email
from clinic.services.notification_service import AppointmentNotice, QueueNotifier, dispatch
from tests.conftest import RecordingNotifier


def make_notice(kind=NotificationKind.CREATION, email="luis@mail.com", reason=None) -> AppointmentNotice:
    return AppointmentNotice(
        kind=kind,
        appointment_id=7,
        start=datetime(2030, 1, 7, 9, 0),
        duration=45,
        patient_name="Luis <Perez>",
        patient_email=email,
        dentist_name="Ana Molar",
        treatment_name="Root canal",
        cancellation_reason=reason,
    )


def test_html_shows_time_range_and_escapes_names():
    html = build_appointment_html(make_notice())
    assert "Appointment Confirmed" in html
    assert "09:00 – 09:45" in html
    assert "Luis &lt;Perez&gt;" in html
    assert "Dr. Ana Molar" in html


def test_cancellation_mentions_reason():
    html = build_appointment_html(make_notice(NotificationKind.CANCELLATION, reason="Sick"))
    assert "Appointment Cancelled" in html
    assert "Sick" in html


def test_no_email_address_skips_sending(monkeypatch):
    sent = []
    monkeypatch.setattr(email_service, "_send_email_sync", lambda *args: sent.append(args))
    send_appointment_email(make_notice(email=None))
    assert sent == []
    send_appointment_email(make_notice(NotificationKind.REMINDER))
    assert sent[0][0] == "luis@mail.com"
    assert "Appointment Reminder" in sent[0][1]


def test_dispatch_reports_failure_without_raising():
    assert dispatch(RecordingNotifier(fail=True), make_notice()) is False
    queue = QueueNotifier()
    assert dispatch(queue, make_notice()) is True
    assert len(queue.pending) == 1


@pytest.mark.anyio
async def test_reminder_sweep_flags_and_sends(database, monkeypatch):
    from clinic import main

    delivered = []
    monkeypatch.setattr(main, "send_appointment_email", delivered.append)
    soon = datetime.now(UTC).replace(tzinfo=None, microsecond=0) + timedelta(hours=2)
    async with async_session_maker() as session:
        dentist = User(email="d@smiles.com", first_name="Ana", last_name="Molar", role="dentist", hashed_password="x")
        patient = Patient(first_name="Luis", last_name="Perez", email="luis@mail.com")
        treatment = Treatment(name="Cleaning", cost=Decimal("50"), duration=30)
        session.add_all([dentist, patient, treatment])
        await session.flush()
        session.add(
            Appointment(
                patient_id=patient.id, dentist_id=dentist.id, treatment_id=treatment.id, date=soon, duration=30
            )
        )
        session.add(
            Appointment(
                patient_id=patient.id,
                dentist_id=dentist.id,
                treatment_id=treatment.id,
                date=soon + timedelta(days=3),
                duration=30,
            )
        )
        await session.commit()

    assert await main.run_reminder_sweep() == 1
    assert [n.kind for n in delivered] == [NotificationKind.REMINDER]
    assert delivered[0].patient_email == "luis@mail.com"
    assert await main.run_reminder_sweep() == 0
