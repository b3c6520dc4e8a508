from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.api.deps import ensure_self_or_admin, get_current_user, get_session, require_roles
from clinic.api.schemas.auth import ChangePasswordRequest
from clinic.api.schemas.common import Page
from clinic.api.schemas.user import CreateUserRequest, UpdateUserRequest, UserStatsResponse
from clinic.models.user import User, UserCreate, UserPublic, UserRole, UserUpdate
from clinic.services.auth_service import change_password
from clinic.services.availability_service import to_clinic_time
from clinic.services.user_service import (
    create_user,
    deactivate_user,
    get_user,
    get_user_stats,
    get_working_hours,
    list_users,
    parse_working_hours,
    update_user,
    update_working_hours,
    user_to_public,
)

router = APIRouter(prefix="/users", tags=["users"])

_admin = require_roles(UserRole.ADMIN)


@router.get("", response_model=Page[UserPublic])
async def list_all_users(
    role: UserRole | None = Query(None),
    status_param: str | None = Query("active", alias="status"),
    search: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Page[UserPublic]:
    users, total = await list_users(
        session, role=role.value if role else None, status=status_param, search=search, page=page, limit=limit
    )
    return Page[UserPublic].build([user_to_public(u) for u in users], total, page, limit)


@router.post("", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
async def create_staff_user(
    body: CreateUserRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_admin),
) -> UserPublic:
    hours = parse_working_hours(body.working_hours) if body.working_hours is not None else None
    user = await create_user(
        session,
        UserCreate(
            email=body.email,
            password=body.password,
            first_name=body.first_name,
            last_name=body.last_name,
            role=body.role,
            specialization=body.specialization,
            working_hours=hours,
        ),
    )
    return user_to_public(user)


@router.get("/{user_id}", response_model=UserPublic)
async def get_one_user(
    user_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> UserPublic:
    ensure_self_or_admin(current_user, user_id)
    return user_to_public(await get_user(session, user_id))


@router.put("/{user_id}", response_model=UserPublic)
async def update_one_user(
    user_id: int,
    body: UpdateUserRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> UserPublic:
    ensure_self_or_admin(current_user, user_id)
    changes = body.model_dump(exclude_unset=True)
    if current_user.role != UserRole.ADMIN.value:
        # Only admins change roles
        changes.pop("role", None)
    user = await update_user(session, user_id, UserUpdate(**changes))
    return user_to_public(user)


@router.put("/{user_id}/change-password")
async def change_user_password(
    user_id: int,
    body: ChangePasswordRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> dict:
    ensure_self_or_admin(current_user, user_id)
    user = await get_user(session, user_id)
    if not await change_password(session, user, body.current_password, body.new_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Current password is incorrect",
        )
    return {"message": "Password updated successfully"}


@router.patch("/{user_id}/deactivate", response_model=UserPublic)
async def deactivate_one_user(
    user_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_admin),
) -> UserPublic:
    return user_to_public(await deactivate_user(session, user_id))


@router.get("/{user_id}/working-hours")
async def read_working_hours(
    user_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> dict[str, Any]:
    hours = await get_working_hours(session, user_id)
    return hours.to_json()


@router.put("/{user_id}/working-hours")
async def replace_working_hours(
    user_id: int,
    body: dict[str, Any] = Body(...),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> dict[str, Any]:
    ensure_self_or_admin(current_user, user_id)
    hours = await update_working_hours(session, user_id, body)
    return hours.to_json()


@router.get("/{user_id}/stats", response_model=UserStatsResponse)
async def user_stats(
    user_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> UserStatsResponse:
    ensure_self_or_admin(current_user, user_id)
    stats = await get_user_stats(session, user_id, to_clinic_time(datetime.now(UTC)).date())
    return UserStatsResponse(**stats.__dict__)
