"""End-to-end tests through the HTTP API on an in-memory database."""
import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from tests.conftest import MONDAY

pytestmark = pytest.mark.anyio

API = "/api/v1"
PASSWORD = "s3cret-pass"


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def register_admin(client) -> str:
    response = await client.post(
        f"{API}/auth/register",
        json={"email": "admin@smiles.com", "password": PASSWORD, "first_name": "Ada", "last_name": "Root"},
    )
    assert response.status_code == 201
    return response.json()["access_token"]


async def create_staff(client, admin_token: str, role: str, email: str, **extra) -> int:
    response = await client.post(
        f"{API}/users",
        json={"email": email, "password": PASSWORD, "first_name": "Staff", "last_name": role, "role": role, **extra},
        headers=auth(admin_token),
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


async def login(client, email: str) -> str:
    response = await client.post(f"{API}/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200
    return response.json()["access_token"]


@pytest.fixture
async def clinic(client):
    admin = await register_admin(client)
    dentist_id = await create_staff(client, admin, "dentist", "dentist@smiles.com", specialization="Orthodontics")
    await create_staff(client, admin, "receptionist", "desk@smiles.com")
    patient = await client.post(
        f"{API}/patients",
        json={"first_name": "Luis", "last_name": "Perez", "dni": "12345678", "allergies": ["penicillin"]},
        headers=auth(admin),
    )
    assert patient.status_code == 201, patient.text
    treatment = await client.post(
        f"{API}/treatments",
        json={"name": "Cleaning", "cost": "50.00", "duration": 30, "category": "general"},
        headers=auth(admin),
    )
    assert treatment.status_code == 201, treatment.text
    return {
        "admin": admin,
        "dentist_id": dentist_id,
        "patient_id": patient.json()["id"],
        "treatment_id": treatment.json()["id"],
    }


def booking(clinic, time: str = "09:00:00") -> dict:
    return {
        "patient_id": clinic["patient_id"],
        "dentist_id": clinic["dentist_id"],
        "treatment_id": clinic["treatment_id"],
        "date": f"{MONDAY.isoformat()}T{time}",
    }


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_first_user_is_admin_and_later_registration_needs_admin(client):
    token = await register_admin(client)
    me = await client.get(f"{API}/auth/me", headers=auth(token))
    assert me.json()["role"] == "admin"

    anonymous = await client.post(
        f"{API}/auth/register",
        json={"email": "someone@smiles.com", "password": PASSWORD, "first_name": "No", "last_name": "Body"},
    )
    assert anonymous.status_code == 403


async def test_refresh_rotates_tokens(client):
    await register_admin(client)
    response = await client.post(f"{API}/auth/login", json={"email": "admin@smiles.com", "password": PASSWORD})
    refresh_token = response.json()["refresh_token"]

    rotated = await client.post(f"{API}/auth/refresh", json={"refresh_token": refresh_token})
    assert rotated.status_code == 200
    reused = await client.post(f"{API}/auth/refresh", json={"refresh_token": refresh_token})
    assert reused.status_code == 401


async def test_wrong_password(client):
    await register_admin(client)
    response = await client.post(f"{API}/auth/login", json={"email": "admin@smiles.com", "password": "nope-nope"})
    assert response.status_code == 401


async def test_requests_need_a_token(client):
    response = await client.get(f"{API}/appointments")
    assert response.status_code == 401


async def test_availability_and_booking(client, clinic):
    params = {"dentist_id": clinic["dentist_id"], "date": MONDAY.isoformat(), "treatment_id": clinic["treatment_id"]}
    headers = auth(clinic["admin"])

    response = await client.get(f"{API}/appointments/availability", params=params, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["duration"] == 30
    assert len(body["slots"]) == 16
    assert body["slots"][0]["start"] == f"{MONDAY.isoformat()}T09:00:00"

    booked = await client.post(f"{API}/appointments", json=booking(clinic), headers=headers)
    assert booked.status_code == 201, booked.text
    assert booked.json()["status"] == "pending"
    assert booked.json()["end"] == f"{MONDAY.isoformat()}T09:30:00"

    clash = await client.post(f"{API}/appointments", json=booking(clinic, "09:15:00"), headers=headers)
    assert clash.status_code == 409
    assert clash.json()["kind"] == "conflict"

    response = await client.get(f"{API}/appointments/availability", params=params, headers=headers)
    slots = response.json()["slots"]
    assert len(slots) == 15
    assert slots[0]["start"] == f"{MONDAY.isoformat()}T09:30:00"

    listing = await client.get(
        f"{API}/appointments", params={"dentist_id": clinic["dentist_id"], "search": "per"}, headers=headers
    )
    assert listing.json()["total"] == 1


async def test_availability_with_explicit_duration(client, clinic):
    response = await client.get(
        f"{API}/appointments/availability",
        params={"dentist_id": clinic["dentist_id"], "date": MONDAY.isoformat(), "duration": 60},
        headers=auth(clinic["admin"]),
    )
    assert len(response.json()["slots"]) == 8


async def test_unknown_references_are_not_found(client, clinic):
    headers = auth(clinic["admin"])
    response = await client.post(f"{API}/appointments", json={**booking(clinic), "patient_id": 999}, headers=headers)
    assert response.status_code == 404
    assert response.json()["kind"] == "not_found"

    response = await client.get(
        f"{API}/appointments/availability", params={"dentist_id": 999, "date": MONDAY.isoformat()}, headers=headers
    )
    assert response.status_code == 404


async def test_lifecycle_status_codes(client, clinic):
    headers = auth(clinic["admin"])
    appointment_id = (await client.post(f"{API}/appointments", json=booking(clinic), headers=headers)).json()["id"]

    cancelled = await client.patch(
        f"{API}/appointments/{appointment_id}/cancel", json={"reason": "Feeling better"}, headers=headers
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["cancellation_reason"] == "Feeling better"

    again = await client.patch(f"{API}/appointments/{appointment_id}/cancel", headers=headers)
    assert again.status_code == 409

    complete = await client.patch(f"{API}/appointments/{appointment_id}/complete", headers=headers)
    assert complete.status_code == 400
    assert complete.json()["kind"] == "invalid_state"

    moved = await client.put(f"{API}/appointments/{appointment_id}", json={"date": f"{MONDAY}T15:00:00"}, headers=headers)
    assert moved.status_code == 400


async def test_reschedule(client, clinic):
    headers = auth(clinic["admin"])
    first = (await client.post(f"{API}/appointments", json=booking(clinic), headers=headers)).json()["id"]
    await client.post(f"{API}/appointments", json=booking(clinic, "10:00:00"), headers=headers)

    clash = await client.put(f"{API}/appointments/{first}", json={"date": f"{MONDAY}T10:00:00"}, headers=headers)
    assert clash.status_code == 409

    moved = await client.put(f"{API}/appointments/{first}", json={"date": f"{MONDAY}T10:30:00"}, headers=headers)
    assert moved.status_code == 200
    assert moved.json()["date"] == f"{MONDAY}T10:30:00"


async def test_receptionist_cannot_complete(client, clinic):
    desk = await login(client, "desk@smiles.com")
    appointment = await client.post(f"{API}/appointments", json=booking(clinic), headers=auth(desk))
    assert appointment.status_code == 201

    response = await client.patch(f"{API}/appointments/{appointment.json()['id']}/complete", headers=auth(desk))
    assert response.status_code == 403

    dentist = await login(client, "dentist@smiles.com")
    response = await client.patch(f"{API}/appointments/{appointment.json()['id']}/complete", headers=auth(dentist))
    assert response.status_code == 200


async def test_working_hours(client, clinic):
    headers = auth(clinic["admin"])
    url = f"{API}/users/{clinic['dentist_id']}/working-hours"

    default = await client.get(url, headers=headers)
    assert set(default.json()) == {"monday", "tuesday", "wednesday", "thursday", "friday"}

    invalid = await client.put(url, json={"monday": {"start": "18:00", "end": "09:00"}}, headers=headers)
    assert invalid.status_code == 400
    assert invalid.json()["kind"] == "invalid_argument"

    updated = await client.put(
        url,
        json={"monday": {"start": "10:00", "end": "12:00", "breakStart": "11:00", "breakEnd": "11:30"}},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json() == {
        "monday": {"start": "10:00:00", "end": "12:00:00", "break_start": "11:00:00", "break_end": "11:30:00"}
    }

    slots = await client.get(
        f"{API}/appointments/availability",
        params={"dentist_id": clinic["dentist_id"], "date": MONDAY.isoformat(), "duration": 30},
        headers=headers,
    )
    assert [s["start"][11:16] for s in slots.json()["slots"]] == ["10:00", "10:30", "11:30"]


async def test_deactivating_dentist_with_pending_appointments_conflicts(client, clinic):
    headers = auth(clinic["admin"])
    await client.post(f"{API}/appointments", json=booking(clinic), headers=headers)
    response = await client.patch(f"{API}/users/{clinic['dentist_id']}/deactivate", headers=headers)
    assert response.status_code == 409


async def test_duplicate_patient_and_treatment(client, clinic):
    headers = auth(clinic["admin"])
    patient = await client.post(
        f"{API}/patients", json={"first_name": "Other", "last_name": "Person", "dni": "12345678"}, headers=headers
    )
    assert patient.status_code == 409
    treatment = await client.post(
        f"{API}/treatments", json={"name": "cleaning", "cost": "10", "duration": 15}, headers=headers
    )
    assert treatment.status_code == 409


async def test_dental_records(client, clinic):
    dentist = auth(await login(client, "dentist@smiles.com"))
    created = await client.post(
        f"{API}/dental-records",
        json={
            "patient_id": clinic["patient_id"],
            "diagnosis": "Caries on 14",
            "procedures": ["filling"],
            "odontogram": {"14": {"condition": "filled", "surfaces": ["O"]}},
        },
        headers=dentist,
    )
    assert created.status_code == 201, created.text
    assert created.json()["dentist_id"] == clinic["dentist_id"]
    assert created.json()["odontogram"]["14"]["condition"] == "filled"

    bad_tooth = await client.post(
        f"{API}/dental-records",
        json={"patient_id": clinic["patient_id"], "diagnosis": "x", "odontogram": {"40": {}}},
        headers=dentist,
    )
    assert bad_tooth.status_code == 422

    history = await client.get(f"{API}/dental-records/patient/{clinic['patient_id']}", headers=dentist)
    assert len(history.json()) == 1

    desk = auth(await login(client, "desk@smiles.com"))
    assert (await client.get(f"{API}/dental-records/patient/{clinic['patient_id']}", headers=desk)).status_code == 403


async def test_concurrent_bookings_for_the_same_time_admit_one(client, clinic):
    headers = auth(clinic["admin"])
    responses = await asyncio.gather(
        *(client.post(f"{API}/appointments", json=booking(clinic), headers=headers) for _ in range(2))
    )
    assert sorted(r.status_code for r in responses) == [201, 409]

    listing = await client.get(f"{API}/appointments", params={"dentist_id": clinic["dentist_id"]}, headers=headers)
    assert listing.json()["total"] == 1


async def test_concurrent_overlapping_bookings_admit_one(client, clinic):
    headers = auth(clinic["admin"])
    responses = await asyncio.gather(
        client.post(f"{API}/appointments", json=booking(clinic, "10:00:00"), headers=headers),
        client.post(f"{API}/appointments", json=booking(clinic, "10:15:00"), headers=headers),
        client.post(f"{API}/appointments", json=booking(clinic, "10:20:00"), headers=headers),
    )
    assert sorted(r.status_code for r in responses) == [201, 409, 409]


async def test_availability_accepts_camel_case_dentist_id(client, clinic):
    headers = auth(clinic["admin"])
    response = await client.get(
        f"{API}/appointments/availability",
        params={"dentistId": clinic["dentist_id"], "date": MONDAY.isoformat(), "duration": 30},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["dentist_id"] == clinic["dentist_id"]
    assert len(response.json()["slots"]) == 16


async def test_availability_requires_a_dentist(client, clinic):
    response = await client.get(
        f"{API}/appointments/availability", params={"date": MONDAY.isoformat()}, headers=auth(clinic["admin"])
    )
    assert response.status_code == 422


async def test_update_own_password(client):
    await register_admin(client)
    tokens = (await client.post(f"{API}/auth/login", json={"email": "admin@smiles.com", "password": PASSWORD})).json()
    headers = auth(tokens["access_token"])

    wrong = await client.put(
        f"{API}/auth/update-password",
        json={"current_password": "not-my-pass", "new_password": "brand-new-pass"},
        headers=headers,
    )
    assert wrong.status_code == 401

    changed = await client.put(
        f"{API}/auth/update-password",
        json={"current_password": PASSWORD, "new_password": "brand-new-pass"},
        headers=headers,
    )
    assert changed.status_code == 200

    old = await client.post(f"{API}/auth/login", json={"email": "admin@smiles.com", "password": PASSWORD})
    assert old.status_code == 401
    new = await client.post(f"{API}/auth/login", json={"email": "admin@smiles.com", "password": "brand-new-pass"})
    assert new.status_code == 200
    stale = await client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert stale.status_code == 401


async def test_change_password_of_another_user_needs_admin(client, clinic):
    desk = auth(await login(client, "desk@smiles.com"))
    url = f"{API}/users/{clinic['dentist_id']}/change-password"
    body = {"current_password": PASSWORD, "new_password": "another-pass"}

    assert (await client.put(url, json=body, headers=desk)).status_code == 403
    assert (await client.put(url, json=body, headers=auth(clinic["admin"]))).status_code == 200
    response = await client.post(f"{API}/auth/login", json={"email": "dentist@smiles.com", "password": "another-pass"})
    assert response.status_code == 200


async def test_treatment_categories(client, clinic):
    headers = auth(clinic["admin"])
    braces = await client.post(
        f"{API}/treatments",
        json={"name": "Braces", "cost": "900.00", "duration": 60, "category": "orthodontics"},
        headers=headers,
    )
    assert braces.status_code == 201
    retired = await client.post(
        f"{API}/treatments",
        json={"name": "Retainer", "cost": "120.00", "duration": 30, "category": "orthodontics"},
        headers=headers,
    )
    await client.patch(f"{API}/treatments/{retired.json()['id']}/deactivate", headers=headers)

    categories = await client.get(f"{API}/treatments/categories", headers=headers)
    assert categories.status_code == 200
    assert categories.json() == [
        {"category": "general", "treatment_count": 1},
        {"category": "orthodontics", "treatment_count": 1},
    ]

    orthodontics = await client.get(f"{API}/treatments/categories/orthodontics", headers=headers)
    assert [t["name"] for t in orthodontics.json()] == ["Braces"]
    assert (await client.get(f"{API}/treatments/categories/unknown", headers=headers)).status_code == 422


async def test_patient_history_and_stats(client, clinic):
    headers = auth(clinic["admin"])
    first = (await client.post(f"{API}/appointments", json=booking(clinic), headers=headers)).json()["id"]
    second = (await client.post(f"{API}/appointments", json=booking(clinic, "15:00:00"), headers=headers)).json()["id"]
    await client.patch(f"{API}/appointments/{first}/complete", headers=headers)

    history = await client.get(f"{API}/patients/{clinic['patient_id']}/appointments", headers=headers)
    assert [a["id"] for a in history.json()] == [second, first]

    stats = await client.get(f"{API}/patients/{clinic['patient_id']}/stats", headers=headers)
    assert stats.status_code == 200
    body = stats.json()
    assert body["total_appointments"] == 2
    assert Decimal(body["total_spent"]) == Decimal("50")
    assert body["last_visit"] == f"{MONDAY}T09:00:00"

    assert (await client.get(f"{API}/patients/999/stats", headers=headers)).status_code == 404


async def test_patient_with_pending_appointments_cannot_be_deleted(client, clinic):
    headers = auth(clinic["admin"])
    appointment_id = (await client.post(f"{API}/appointments", json=booking(clinic), headers=headers)).json()["id"]

    blocked = await client.delete(f"{API}/patients/{clinic['patient_id']}", headers=headers)
    assert blocked.status_code == 400
    assert blocked.json()["kind"] == "invalid_state"

    await client.delete(f"{API}/appointments/{appointment_id}", headers=headers)
    assert (await client.delete(f"{API}/patients/{clinic['patient_id']}", headers=headers)).status_code == 204


async def test_dental_record_update_and_summary(client, clinic):
    dentist = auth(await login(client, "dentist@smiles.com"))
    created = await client.post(
        f"{API}/dental-records",
        json={
            "patient_id": clinic["patient_id"],
            "diagnosis": "Caries on 14",
            "procedures": ["filling", "x-ray"],
            "odontogram": {"14": {"condition": "decayed"}},
        },
        headers=dentist,
    )
    record_id = created.json()["id"]
    await client.post(
        f"{API}/dental-records",
        json={"patient_id": clinic["patient_id"], "diagnosis": "Check-up", "procedures": ["x-ray"]},
        headers=dentist,
    )

    updated = await client.put(
        f"{API}/dental-records/{record_id}",
        json={"diagnosis": "Caries on 14, filled", "odontogram": {"14": {"condition": "filled"}, "3": {}}},
        headers=dentist,
    )
    assert updated.status_code == 200, updated.text
    assert updated.json()["diagnosis"] == "Caries on 14, filled"
    assert updated.json()["procedures"] == ["filling", "x-ray"]
    assert updated.json()["odontogram"]["14"]["condition"] == "filled"
    assert updated.json()["updated_at"] is not None

    other_id = await create_staff(client, clinic["admin"], "dentist", "other@smiles.com")
    assert other_id != clinic["dentist_id"]
    other = auth(await login(client, "other@smiles.com"))
    denied = await client.put(f"{API}/dental-records/{record_id}", json={"diagnosis": "x"}, headers=other)
    assert denied.status_code == 403
    bad_tooth = await client.put(
        f"{API}/dental-records/{record_id}", json={"odontogram": {"33": {}}}, headers=dentist
    )
    assert bad_tooth.status_code == 422

    summary = await client.get(f"{API}/dental-records/patient/{clinic['patient_id']}/summary", headers=dentist)
    assert summary.status_code == 200
    body = summary.json()
    assert body["total_records"] == 2
    assert body["common_procedures"][0] == {"name": "x-ray", "count": 2}
    assert sorted((c["name"], c["count"]) for c in body["teeth_conditions"]) == [("filled", 1), ("healthy", 1)]


async def test_reports(client, clinic):
    headers = auth(clinic["admin"])
    done = []
    for time in ("09:00:00", "10:00:00"):
        appointment_id = (await client.post(f"{API}/appointments", json=booking(clinic, time), headers=headers)).json()["id"]
        await client.patch(f"{API}/appointments/{appointment_id}/complete", headers=headers)
        done.append(appointment_id)
    cancelled = (await client.post(f"{API}/appointments", json=booking(clinic, "11:00:00"), headers=headers)).json()["id"]
    await client.patch(f"{API}/appointments/{cancelled}/cancel", headers=headers)
    await client.post(f"{API}/appointments", json=booking(clinic, "15:00:00"), headers=headers)
    day = {"start_date": MONDAY.isoformat(), "end_date": MONDAY.isoformat()}

    revenue = (await client.get(f"{API}/reports/revenue", params=day, headers=headers)).json()
    assert Decimal(revenue["total_revenue"]) == Decimal("100")
    assert revenue["total_appointments"] == 2
    assert [b["period"] for b in revenue["buckets"]] == [MONDAY.isoformat()]

    by_month = await client.get(f"{API}/reports/revenue", params={**day, "group_by": "month"}, headers=headers)
    assert by_month.json()["buckets"][0]["period"] == "2030-01"
    bad_group = await client.get(f"{API}/reports/revenue", params={**day, "group_by": "year"}, headers=headers)
    assert bad_group.status_code == 422
    backwards = await client.get(
        f"{API}/reports/revenue", params={"start_date": MONDAY.isoformat(), "end_date": "2030-01-01"}, headers=headers
    )
    assert backwards.status_code == 400

    dentists = (await client.get(f"{API}/reports/dentists", params=day, headers=headers)).json()
    assert len(dentists) == 1
    assert dentists[0]["dentist_id"] == clinic["dentist_id"]
    assert (dentists[0]["total_appointments"], dentists[0]["completed_appointments"]) == (4, 2)
    assert dentists[0]["cancelled_appointments"] == 1
    assert Decimal(dentists[0]["revenue"]) == Decimal("100")

    treatments = (await client.get(f"{API}/reports/treatments", params=day, headers=headers)).json()
    assert [(t["name"], t["appointment_count"]) for t in treatments] == [("Cleaning", 2)]

    today = datetime.now(UTC).date()
    around_today = {"start_date": (today - timedelta(days=1)).isoformat(), "end_date": (today + timedelta(days=1)).isoformat()}
    new_patients = (await client.get(f"{API}/reports/new-patients", params=around_today, headers=headers)).json()
    assert new_patients["total_new_patients"] == 1

    dashboard = (await client.get(f"{API}/reports/dashboard", headers=headers)).json()
    assert dashboard["pending_appointments"] == 1
    assert dashboard["active_patients"] == 1

    desk = auth(await login(client, "desk@smiles.com"))
    assert (await client.get(f"{API}/reports/revenue", params=day, headers=desk)).status_code == 403
    assert (await client.get(f"{API}/reports/dashboard", headers=desk)).status_code == 403
