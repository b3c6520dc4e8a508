from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.core.errors import InvalidArgument, NotFound
from clinic.models.dental_record import DentalRecord, DentalRecordCreate, DentalRecordUpdate, ToothState
from clinic.models.user import User
from clinic.services.patient_service import get_patient


@dataclass(frozen=True)
class DentalSummary:
    total_records: int
    last_visit: datetime | None
    # (name, count), most frequent first
    common_procedures: list[tuple[str, int]]
    teeth_conditions: list[tuple[str, int]]


def _odontogram_json(odontogram: dict[int, ToothState]) -> dict[str, dict]:
    return {str(number): tooth.model_dump(mode="json") for number, tooth in sorted(odontogram.items())}


async def create_dental_record(session: AsyncSession, data: DentalRecordCreate, recorded_by: User) -> DentalRecord:
    await get_patient(session, data.patient_id)
    dentist_id = data.dentist_id or recorded_by.id
    dentist = await session.get(User, dentist_id)
    if dentist is None:
        raise NotFound(f"Dentist {dentist_id} not found")
    if not dentist.is_dentist:
        raise InvalidArgument(f"User {dentist_id} is not a dentist")
    odontogram = None
    if data.odontogram:
        odontogram = _odontogram_json(data.odontogram)
    values = data.model_dump(exclude={"odontogram", "dentist_id", "date"}, exclude_none=True)
    record = DentalRecord(**values, dentist_id=dentist_id, odontogram=odontogram)
    if data.date is not None:
        record.date = data.date
    session.add(record)
    await session.flush()
    await session.refresh(record)
    return record


async def get_dental_record(session: AsyncSession, record_id: int) -> DentalRecord:
    record = await session.get(DentalRecord, record_id)
    if record is None:
        raise NotFound(f"Dental record {record_id} not found")
    return record


async def list_dental_records(session: AsyncSession, patient_id: int) -> list[DentalRecord]:
    """Records of a patient, newest first."""
    await get_patient(session, patient_id)
    result = await session.execute(
        select(DentalRecord)
        .where(DentalRecord.patient_id == patient_id)
        .order_by(DentalRecord.date.desc(), DentalRecord.id.desc())
    )
    return list(result.scalars().all())


async def update_dental_record(session: AsyncSession, record_id: int, data: DentalRecordUpdate) -> DentalRecord:
    record = await get_dental_record(session, record_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True, exclude={"odontogram"})
    for key, value in changes.items():
        setattr(record, key, value)
    if data.odontogram is not None:
        record.odontogram = _odontogram_json(data.odontogram)
    record.updated_at = datetime.now(UTC).replace(tzinfo=None)
    session.add(record)
    await session.flush()
    await session.refresh(record)
    return record


async def summarize_dental_history(session: AsyncSession, patient_id: int, top: int = 5) -> DentalSummary:
    """Record count, last visit, most common procedures and tooth conditions across all records."""
    records = await list_dental_records(session, patient_id)
    procedures = Counter(p for r in records for p in r.procedures or [])
    conditions = Counter(
        tooth.get("condition", "healthy") for r in records for tooth in (r.odontogram or {}).values()
    )
    return DentalSummary(
        total_records=len(records),
        last_visit=records[0].date if records else None,
        common_procedures=procedures.most_common(top),
        teeth_conditions=sorted(conditions.items(), key=lambda item: (-item[1], item[0])),
    )
