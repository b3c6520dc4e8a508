from collections.abc import Callable, Coroutine
from typing import Any

from fastapi import BackgroundTasks, Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.core.db import get_session
from clinic.core.security import decode_access_token
from clinic.models.user import User, UserRole, UserStatus
from clinic.repositories.appointment_repository import SQLAppointmentRepository
from clinic.services.appointment_service import AppointmentService
from clinic.services.notification_service import EmailNotifier

security = HTTPBearer(auto_error=False)


def refresh_header(x_refresh_token: str | None = Header(default=None, alias="X-Refresh-Token")) -> str | None:
    """Extract X-Refresh-Token header for logout/refresh endpoints."""
    return x_refresh_token


async def _user_from_credentials(
    session: AsyncSession, credentials: HTTPAuthorizationCredentials | None
) -> User | None:
    if not credentials or credentials.scheme.lower() != "bearer":
        return None
    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        return None
    try:
        uid = int(user_id)
    except ValueError:
        return None
    user = await session.get(User, uid)
    if not user or user.status != UserStatus.ACTIVE.value:
        return None
    return user


async def get_current_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = await _user_from_credentials(session, credentials)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_optional_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User | None:
    return await _user_from_credentials(session, credentials)


def require_roles(*roles: UserRole) -> Callable[..., Coroutine[Any, Any, User]]:
    """Dependency allowing only users whose role is in ``roles``."""
    allowed = {r.value for r in roles}

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action",
            )
        return current_user

    return checker


def ensure_self_or_admin(current_user: User, user_id: int) -> None:
    if current_user.id != user_id and current_user.role != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access your own account",
        )


def get_appointment_service(
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
) -> AppointmentService:
    return AppointmentService(SQLAppointmentRepository(session), EmailNotifier(background_tasks))
