from datetime import UTC, datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.core.config import settings
from clinic.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)
from clinic.models.refresh_token import RefreshToken, naive_utc
from clinic.models.user import User, UserStatus


def _utc_naive() -> datetime:
    """Naive UTC datetime for DB columns that are TIMESTAMP WITHOUT TIME ZONE."""
    return datetime.now(UTC).replace(tzinfo=None)


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


async def count_users(session: AsyncSession) -> int:
    return await session.scalar(select(func.count()).select_from(User)) or 0


async def issue_token_pair(session: AsyncSession, user: User) -> tuple[str, str, int]:
    """Create an access/refresh pair and remember the refresh token's jti."""
    access = create_access_token(user.id, user.role)
    refresh, jti, expires_at = create_refresh_token(user.id)
    session.add(RefreshToken(user_id=user.id, jti=jti, expires_at=naive_utc(expires_at)))
    await session.flush()
    return access, refresh, settings.access_token_expire_minutes * 60


async def login_user(
    session: AsyncSession, email: str, password: str
) -> tuple[User, str, str, int] | None:
    user = await get_user_by_email(session, email)
    if not user or user.status != UserStatus.ACTIVE.value:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    user.last_login = _utc_naive()
    session.add(user)
    access, refresh, expires_in = await issue_token_pair(session, user)
    return user, access, refresh, expires_in


async def revoke_refresh_token(session: AsyncSession, jti: str) -> None:
    result = await session.execute(select(RefreshToken).where(RefreshToken.jti == jti))
    row = result.scalar_one_or_none()
    if row:
        row.revoked = True
        session.add(row)


async def refresh_tokens(
    session: AsyncSession, refresh_token: str
) -> tuple[User, str, str, int] | None:
    user_id_str, jti = decode_refresh_token(refresh_token)
    if not user_id_str or not jti:
        return None
    result = await session.execute(select(RefreshToken).where(RefreshToken.jti == jti))
    token_row = result.scalar_one_or_none()
    if not token_row or not token_row.is_usable(datetime.now(UTC)):
        return None
    user = await session.get(User, int(user_id_str))
    if not user or user.status != UserStatus.ACTIVE.value:
        return None
    # Rotation: a refresh token is good for exactly one refresh
    token_row.revoked = True
    session.add(token_row)
    access, refresh, expires_in = await issue_token_pair(session, user)
    return user, access, refresh, expires_in


async def change_password(session: AsyncSession, user: User, current_password: str, new_password: str) -> bool:
    """Replace the password once the current one checks out.

    Outstanding refresh tokens of the user are revoked, so other sessions end
    when their access token expires.
    """
    if not verify_password(current_password, user.hashed_password):
        return False
    user.hashed_password = hash_password(new_password)
    session.add(user)
    await session.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user.id, RefreshToken.revoked.is_(False))
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    return True
