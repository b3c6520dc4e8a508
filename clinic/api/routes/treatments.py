from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.api.deps import get_current_user, get_session, require_roles
from clinic.api.schemas.common import Page
from clinic.api.schemas.treatment import CategoryCount
from clinic.models.treatment import TreatmentCategory, TreatmentCreate, TreatmentPublic, TreatmentUpdate
from clinic.models.user import User, UserRole
from clinic.services.treatment_service import (
    count_treatments_by_category,
    create_treatment,
    deactivate_treatment,
    get_treatment,
    list_treatments,
    list_treatments_in_category,
    update_treatment,
)

router = APIRouter(prefix="/treatments", tags=["treatments"])

_admin = require_roles(UserRole.ADMIN)


@router.get("", response_model=Page[TreatmentPublic])
async def list_all_treatments(
    search: str | None = Query(None),
    category: TreatmentCategory | None = Query(None),
    include_inactive: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Page[TreatmentPublic]:
    treatments, total = await list_treatments(
        session, search=search, category=category, include_inactive=include_inactive, page=page, limit=limit
    )
    return Page[TreatmentPublic].build([TreatmentPublic.model_validate(t) for t in treatments], total, page, limit)


@router.post("", response_model=TreatmentPublic, status_code=status.HTTP_201_CREATED)
async def add_treatment(
    body: TreatmentCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_admin),
) -> TreatmentPublic:
    return TreatmentPublic.model_validate(await create_treatment(session, body))


@router.get("/categories", response_model=list[CategoryCount])
async def treatment_categories(
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[CategoryCount]:
    counts = await count_treatments_by_category(session)
    return [CategoryCount(category=category, treatment_count=n) for category, n in counts]


@router.get("/categories/{category}", response_model=list[TreatmentPublic])
async def treatments_in_category(
    category: TreatmentCategory,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[TreatmentPublic]:
    """Active treatments of one category, by name."""
    return [TreatmentPublic.model_validate(t) for t in await list_treatments_in_category(session, category)]


@router.get("/{treatment_id}", response_model=TreatmentPublic)
async def get_one_treatment(
    treatment_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> TreatmentPublic:
    return TreatmentPublic.model_validate(await get_treatment(session, treatment_id))


@router.put("/{treatment_id}", response_model=TreatmentPublic)
async def edit_treatment(
    treatment_id: int,
    body: TreatmentUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_admin),
) -> TreatmentPublic:
    return TreatmentPublic.model_validate(await update_treatment(session, treatment_id, body))


@router.patch("/{treatment_id}/deactivate", response_model=TreatmentPublic)
async def retire_treatment(
    treatment_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_admin),
) -> TreatmentPublic:
    return TreatmentPublic.model_validate(await deactivate_treatment(session, treatment_id))
