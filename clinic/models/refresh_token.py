from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def naive_utc(dt: datetime) -> datetime:
    """Naive UTC datetime for TIMESTAMP WITHOUT TIME ZONE columns."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.replace(tzinfo=None)


class RefreshToken(SQLModel, table=True):
    """Issued refresh token, tracked by jti so logout and rotation can revoke it."""

    __tablename__ = "refresh_tokens"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    jti: str = Field(unique=True, index=True)
    expires_at: datetime = Field(index=True, sa_type=DateTime)
    revoked: bool = False
    issued_at: datetime = Field(default_factory=lambda: naive_utc(datetime.now(UTC)), sa_type=DateTime)

    def is_usable(self, now: datetime) -> bool:
        return not self.revoked and naive_utc(self.expires_at) > naive_utc(now)
