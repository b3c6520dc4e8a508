from datetime import date

from fastapi import APIRouter, Depends, Query
from fastapi.exceptions import RequestValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.api.deps import get_current_user, get_session
from clinic.api.schemas.appointment import AvailabilityResponse, SlotInfo
from clinic.core.config import settings
from clinic.core.errors import NotFound
from clinic.models.user import User
from clinic.repositories.appointment_repository import SQLAppointmentRepository
from clinic.services.slot_service import compute_available_slots

# Registered before the appointments router so /appointments/availability is not read as an id
router = APIRouter(prefix="/appointments", tags=["availability"])


@router.get("/availability", response_model=AvailabilityResponse)
async def dentist_availability(
    dentist_id_param: int | None = Query(None, alias="dentistId"),
    dentist_id: int | None = Query(None, include_in_schema=False),
    date_param: date = Query(..., alias="date"),
    duration: int | None = Query(None, description="Slot length in minutes"),
    treatment_id: int | None = Query(None, alias="treatmentId", description="Use this treatment's duration as slot length"),
    treatment_id_snake: int | None = Query(None, alias="treatment_id", include_in_schema=False),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> AvailabilityResponse:
    """Free slots of the dentist on the given day, in chronological order.

    ``dentistId`` and ``treatmentId`` are the public names; the snake_case
    spellings are accepted as well.
    """
    dentist_id = dentist_id_param if dentist_id_param is not None else dentist_id
    if dentist_id is None:
        raise RequestValidationError(
            [{"type": "missing", "loc": ("query", "dentistId"), "msg": "Field required", "input": None}]
        )
    if treatment_id is None:
        treatment_id = treatment_id_snake
    repo = SQLAppointmentRepository(session)
    if treatment_id is not None:
        treatment = await repo.get_treatment(treatment_id)
        if treatment is None:
            raise NotFound(f"Treatment {treatment_id} not found")
        duration = treatment.duration
    elif duration is None:
        duration = settings.default_slot_minutes
    slots = await compute_available_slots(repo, dentist_id, date_param, duration)
    return AvailabilityResponse(
        date=date_param.isoformat(),
        dentist_id=dentist_id,
        duration=duration,
        slots=[SlotInfo(start=s.start, end=s.end) for s in slots],
    )
