from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.api.deps import get_session, require_roles
from clinic.api.schemas.dental_record import CountItem, DentalSummaryResponse
from clinic.models.dental_record import DentalRecordCreate, DentalRecordPublic, DentalRecordUpdate
from clinic.models.user import User, UserRole
from clinic.services.dental_record_service import (
    create_dental_record,
    get_dental_record,
    list_dental_records,
    summarize_dental_history,
    update_dental_record,
)

router = APIRouter(prefix="/dental-records", tags=["dental-records"])

# Clinical data is off limits to the front desk
_clinical_staff = require_roles(UserRole.ADMIN, UserRole.DENTIST, UserRole.ASSISTANT)
_recorders = require_roles(UserRole.ADMIN, UserRole.DENTIST)


@router.post("", response_model=DentalRecordPublic, status_code=status.HTTP_201_CREATED)
async def add_dental_record(
    body: DentalRecordCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_recorders),
) -> DentalRecordPublic:
    return DentalRecordPublic.model_validate(await create_dental_record(session, body, recorded_by=current_user))


@router.get("/patient/{patient_id}", response_model=list[DentalRecordPublic])
async def patient_history(
    patient_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_clinical_staff),
) -> list[DentalRecordPublic]:
    return [DentalRecordPublic.model_validate(r) for r in await list_dental_records(session, patient_id)]


@router.get("/patient/{patient_id}/summary", response_model=DentalSummaryResponse)
async def patient_history_summary(
    patient_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_clinical_staff),
) -> DentalSummaryResponse:
    summary = await summarize_dental_history(session, patient_id)
    return DentalSummaryResponse(
        total_records=summary.total_records,
        last_visit=summary.last_visit,
        common_procedures=[CountItem(name=name, count=n) for name, n in summary.common_procedures],
        teeth_conditions=[CountItem(name=name, count=n) for name, n in summary.teeth_conditions],
    )


@router.get("/{record_id}", response_model=DentalRecordPublic)
async def get_one_record(
    record_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_clinical_staff),
) -> DentalRecordPublic:
    return DentalRecordPublic.model_validate(await get_dental_record(session, record_id))


@router.put("/{record_id}", response_model=DentalRecordPublic)
async def edit_record(
    record_id: int,
    body: DentalRecordUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_recorders),
) -> DentalRecordPublic:
    record = await get_dental_record(session, record_id)
    if current_user.role != UserRole.ADMIN.value and record.dentist_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to update this record")
    return DentalRecordPublic.model_validate(await update_dental_record(session, record_id, body))
