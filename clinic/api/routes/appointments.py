from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, Query, status

from clinic.api.deps import get_appointment_service, get_current_user, require_roles
from clinic.api.schemas.appointment import (
    BookAppointmentRequest,
    CancelRequest,
    CompleteRequest,
    RescheduleRequest,
)
from clinic.api.schemas.common import Page
from clinic.models.appointment import AppointmentPublic, AppointmentStatus
from clinic.models.user import User, UserRole
from clinic.repositories.appointment_repository import AppointmentFilter
from clinic.services.appointment_service import AppointmentService, appointment_to_public

router = APIRouter(prefix="/appointments", tags=["appointments"])

_booking_staff = require_roles(UserRole.ADMIN, UserRole.RECEPTIONIST, UserRole.DENTIST)
_clinicians = require_roles(UserRole.ADMIN, UserRole.DENTIST)


@router.get("", response_model=Page[AppointmentPublic])
async def list_appointments(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None, description="Inclusive"),
    dentist_id: int | None = Query(None),
    patient_id: int | None = Query(None),
    status_param: AppointmentStatus | None = Query(None, alias="status"),
    search: str | None = Query(None, description="Patient first or last name"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(get_current_user),
) -> Page[AppointmentPublic]:
    criteria = AppointmentFilter(
        dentist_id=dentist_id,
        patient_id=patient_id,
        status=status_param.value if status_param else None,
        starts_from=datetime.combine(start_date, datetime.min.time()) if start_date else None,
        starts_before=datetime.combine(end_date + timedelta(days=1), datetime.min.time()) if end_date else None,
        search=search,
    )
    appointments, total = await service.list_appointments(criteria, page=page, limit=limit)
    return Page[AppointmentPublic].build([appointment_to_public(a) for a in appointments], total, page, limit)


@router.get("/{appointment_id}", response_model=AppointmentPublic)
async def get_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(get_current_user),
) -> AppointmentPublic:
    return appointment_to_public(await service.get(appointment_id))


@router.post("", response_model=AppointmentPublic, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    body: BookAppointmentRequest,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(_booking_staff),
) -> AppointmentPublic:
    appointment = await service.create(
        patient_id=body.patient_id,
        dentist_id=body.dentist_id,
        treatment_id=body.treatment_id,
        start=body.date,
        notes=body.notes,
    )
    return appointment_to_public(appointment)


@router.put("/{appointment_id}", response_model=AppointmentPublic)
async def reschedule_appointment(
    appointment_id: int,
    body: RescheduleRequest,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(_booking_staff),
) -> AppointmentPublic:
    appointment = await service.reschedule(
        appointment_id, new_start=body.date, new_dentist_id=body.dentist_id, notes=body.notes
    )
    return appointment_to_public(appointment)


@router.patch("/{appointment_id}/cancel", response_model=AppointmentPublic)
async def cancel_appointment(
    appointment_id: int,
    body: CancelRequest | None = None,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(_booking_staff),
) -> AppointmentPublic:
    appointment = await service.cancel(appointment_id, reason=body.reason if body else None)
    return appointment_to_public(appointment)


@router.patch("/{appointment_id}/complete", response_model=AppointmentPublic)
async def complete_appointment(
    appointment_id: int,
    body: CompleteRequest | None = None,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(_clinicians),
) -> AppointmentPublic:
    appointment = await service.complete(appointment_id, notes=body.notes if body else None)
    return appointment_to_public(appointment)


@router.patch("/{appointment_id}/no-show", response_model=AppointmentPublic)
async def mark_no_show(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(_booking_staff),
) -> AppointmentPublic:
    return appointment_to_public(await service.mark_no_show(appointment_id))


@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
) -> None:
    await service.delete(appointment_id)
