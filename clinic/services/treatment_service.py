from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.core.errors import Conflict, NotFound
from clinic.models.treatment import Treatment, TreatmentCategory, TreatmentCreate, TreatmentUpdate


async def get_treatment(session: AsyncSession, treatment_id: int) -> Treatment:
    treatment = await session.get(Treatment, treatment_id)
    if treatment is None:
        raise NotFound(f"Treatment {treatment_id} not found")
    return treatment


async def _name_taken(session: AsyncSession, name: str, exclude_id: int | None = None) -> bool:
    q = select(Treatment.id).where(func.lower(Treatment.name) == name.lower())
    if exclude_id is not None:
        q = q.where(Treatment.id != exclude_id)
    return (await session.execute(q.limit(1))).first() is not None


async def list_treatments(
    session: AsyncSession,
    search: str | None = None,
    category: str | None = None,
    include_inactive: bool = False,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Treatment], int]:
    q = select(Treatment)
    if search:
        q = q.where(Treatment.name.ilike(f"%{search}%"))
    if category:
        q = q.where(Treatment.category == category)
    if not include_inactive:
        q = q.where(Treatment.status == "active")
    total = await session.scalar(select(func.count()).select_from(q.subquery()))
    result = await session.execute(q.order_by(Treatment.name).offset((page - 1) * limit).limit(limit))
    return list(result.scalars().all()), total or 0


async def create_treatment(session: AsyncSession, data: TreatmentCreate) -> Treatment:
    if await _name_taken(session, data.name):
        raise Conflict(f"Treatment '{data.name}' already exists")
    treatment = Treatment(**data.model_dump())
    session.add(treatment)
    await session.flush()
    await session.refresh(treatment)
    return treatment


async def update_treatment(session: AsyncSession, treatment_id: int, data: TreatmentUpdate) -> Treatment:
    """Apply catalog edits. Booked appointments keep the duration they were booked with."""
    treatment = await get_treatment(session, treatment_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in changes and await _name_taken(session, changes["name"], exclude_id=treatment_id):
        raise Conflict(f"Treatment '{changes['name']}' already exists")
    for key, value in changes.items():
        setattr(treatment, key, value)
    session.add(treatment)
    await session.flush()
    await session.refresh(treatment)
    return treatment


async def deactivate_treatment(session: AsyncSession, treatment_id: int) -> Treatment:
    treatment = await get_treatment(session, treatment_id)
    treatment.status = "inactive"
    session.add(treatment)
    await session.flush()
    return treatment


async def list_treatments_in_category(session: AsyncSession, category: TreatmentCategory) -> list[Treatment]:
    result = await session.execute(
        select(Treatment)
        .where(Treatment.category == category, Treatment.status == "active")
        .order_by(Treatment.name)
    )
    return list(result.scalars().all())


async def count_treatments_by_category(session: AsyncSession) -> list[tuple[TreatmentCategory, int]]:
    """Active treatments per category; empty categories are omitted."""
    result = await session.execute(
        select(Treatment.category, func.count(Treatment.id))
        .where(Treatment.status == "active")
        .group_by(Treatment.category)
    )
    counts = {category: n for category, n in result.all()}
    return [(category, counts[category]) for category in TreatmentCategory if category in counts]
