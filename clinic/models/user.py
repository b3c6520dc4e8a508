from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from clinic.scheduling.working_hours import WorkingHours


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class UserRole(str, Enum):
    ADMIN = "admin"
    DENTIST = "dentist"
    ASSISTANT = "assistant"
    RECEPTIONIST = "receptionist"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    first_name: str = Field(max_length=50)
    last_name: str = Field(max_length=50)
    role: str = Field(default=UserRole.RECEPTIONIST.value, index=True, max_length=16)
    specialization: str | None = Field(default=None, max_length=100)


class User(UserBase, table=True):
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)
    hashed_password: str
    # Weekday -> schedule, see clinic.scheduling.working_hours; None means the clinic default
    working_hours: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    status: str = Field(default=UserStatus.ACTIVE.value, max_length=16)
    last_login: datetime | None = Field(default=None, sa_type=DateTime)
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_dentist(self) -> bool:
        return self.role == UserRole.DENTIST.value


class UserCreate(SQLModel):
    email: str
    password: str
    first_name: str
    last_name: str
    role: UserRole = UserRole.RECEPTIONIST
    specialization: str | None = None
    working_hours: WorkingHours | None = None


class UserUpdate(SQLModel):
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: UserRole | None = None
    specialization: str | None = None


class UserPublic(SQLModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: str
    specialization: str | None = None
    status: str
    last_login: datetime | None = None
