from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.api.deps import get_current_user, get_session, require_roles
from clinic.api.schemas.common import Page
from clinic.api.schemas.patient import PatientStatsResponse
from clinic.models.appointment import AppointmentPublic
from clinic.models.patient import PatientCreate, PatientPublic, PatientUpdate
from clinic.models.user import User, UserRole
from clinic.services.appointment_service import appointment_to_public
from clinic.services.patient_service import (
    create_patient,
    delete_patient,
    get_patient,
    get_patient_stats,
    list_patient_appointments,
    list_patients,
    update_patient,
)

router = APIRouter(prefix="/patients", tags=["patients"])

_front_desk = require_roles(UserRole.ADMIN, UserRole.RECEPTIONIST, UserRole.DENTIST, UserRole.ASSISTANT)


@router.get("", response_model=Page[PatientPublic])
async def list_all_patients(
    search: str | None = Query(None, description="Name, email or DNI"),
    sort_by: str = Query("created_at"),
    order: Literal["asc", "desc"] = Query("desc"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Page[PatientPublic]:
    patients, total = await list_patients(
        session, search=search, sort_by=sort_by, descending=order == "desc", page=page, limit=limit
    )
    return Page[PatientPublic].build([PatientPublic.model_validate(p) for p in patients], total, page, limit)


@router.post("", response_model=PatientPublic, status_code=status.HTTP_201_CREATED)
async def register_patient(
    body: PatientCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_front_desk),
) -> PatientPublic:
    return PatientPublic.model_validate(await create_patient(session, body))


@router.get("/{patient_id}", response_model=PatientPublic)
async def get_one_patient(
    patient_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> PatientPublic:
    return PatientPublic.model_validate(await get_patient(session, patient_id))


@router.put("/{patient_id}", response_model=PatientPublic)
async def update_one_patient(
    patient_id: int,
    body: PatientUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_front_desk),
) -> PatientPublic:
    return PatientPublic.model_validate(await update_patient(session, patient_id, body))


@router.delete("/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_one_patient(
    patient_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
) -> None:
    await delete_patient(session, patient_id)


@router.get("/{patient_id}/appointments", response_model=list[AppointmentPublic])
async def patient_appointments(
    patient_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[AppointmentPublic]:
    return [appointment_to_public(a) for a in await list_patient_appointments(session, patient_id)]


@router.get("/{patient_id}/stats", response_model=PatientStatsResponse)
async def patient_stats(
    patient_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> PatientStatsResponse:
    stats = await get_patient_stats(session, patient_id)
    return PatientStatsResponse(**stats.__dict__)
