import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.api.deps import get_current_user, get_optional_user, refresh_header
from clinic.api.schemas.auth import ChangePasswordRequest, LoginRequest, RefreshRequest, RegisterRequest, TokenPair
from clinic.core.db import get_session
from clinic.core.security import decode_refresh_token
from clinic.models.user import User, UserCreate, UserPublic, UserRole
from clinic.services.auth_service import (
    change_password,
    count_users,
    issue_token_pair,
    login_user,
    refresh_tokens,
    revoke_refresh_token,
)
from clinic.services.user_service import create_user, user_to_public

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenPair)
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_session),
) -> TokenPair:
    pair = await login_user(session, body.email, body.password)
    if not pair:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )
    user, access, refresh, expires_in = pair
    logger.info("User %s logged in", user.id)
    return TokenPair(access_token=access, refresh_token=refresh, expires_in=expires_in)


@router.post("/register", response_model=TokenPair, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User | None = Depends(get_optional_user),
) -> TokenPair:
    """Create a staff account.

    The very first account bootstraps the clinic and is always an admin. After
    that only admins may register new users.
    """
    role = body.role
    if await count_users(session) == 0:
        role = UserRole.ADMIN
    elif current_user is None or current_user.role != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can register new users",
        )
    user = await create_user(
        session,
        UserCreate(
            email=body.email,
            password=body.password,
            first_name=body.first_name,
            last_name=body.last_name,
            role=role,
            specialization=body.specialization,
        ),
    )
    access, refresh, expires_in = await issue_token_pair(session, user)
    return TokenPair(access_token=access, refresh_token=refresh, expires_in=expires_in)


@router.post("/refresh", response_model=TokenPair)
async def refresh(
    session: AsyncSession = Depends(get_session),
    x_refresh_token: str | None = Depends(refresh_header),
    body: RefreshRequest | None = None,
) -> TokenPair:
    token = x_refresh_token or (body.refresh_token if body else None)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token required (header X-Refresh-Token or body refresh_token)",
        )
    pair = await refresh_tokens(session, token)
    if not pair:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )
    user, access, refresh, expires_in = pair
    return TokenPair(access_token=access, refresh_token=refresh, expires_in=expires_in)


@router.post("/logout")
async def logout(
    session: AsyncSession = Depends(get_session),
    x_refresh_token: str | None = Depends(refresh_header),
    body: RefreshRequest | None = None,
) -> dict:
    token = x_refresh_token or (body.refresh_token if body else None)
    if token:
        _, jti = decode_refresh_token(token)
        if jti:
            await revoke_refresh_token(session, jti)
    return {"message": "Logged out"}


@router.get("/me", response_model=UserPublic)
async def me(current_user: User = Depends(get_current_user)) -> UserPublic:
    return user_to_public(current_user)


@router.put("/update-password")
async def update_own_password(
    body: ChangePasswordRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> dict:
    if not await change_password(session, current_user, body.current_password, body.new_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Your current password is wrong",
        )
    logger.info("User %s changed their password", current_user.id)
    return {"message": "Password updated successfully"}
