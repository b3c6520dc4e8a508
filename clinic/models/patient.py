from datetime import UTC, date, datetime
from enum import Enum

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class PatientBase(SQLModel):
    first_name: str = Field(max_length=50)
    last_name: str = Field(max_length=50)
    dni: str | None = Field(default=None, max_length=20, unique=True, index=True)
    email: str | None = Field(default=None, unique=True, index=True)
    phone: str | None = Field(default=None, max_length=20)
    birth_date: date | None = None
    gender: Gender | None = None
    address: str | None = Field(default=None, max_length=200)
    blood_type: str | None = Field(default=None, max_length=5)
    notes: str | None = None


class Patient(PatientBase, table=True):
    __tablename__ = "patients"
    id: int | None = Field(default=None, primary_key=True)
    allergies: list[str] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    status: str = Field(default="active", max_length=16)
    last_visit: datetime | None = Field(default=None, sa_type=DateTime)
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class PatientCreate(PatientBase):
    allergies: list[str] | None = None


class PatientUpdate(SQLModel):
    first_name: str | None = None
    last_name: str | None = None
    dni: str | None = None
    email: str | None = None
    phone: str | None = None
    birth_date: date | None = None
    gender: Gender | None = None
    address: str | None = None
    blood_type: str | None = None
    notes: str | None = None
    allergies: list[str] | None = None
    status: str | None = None


class PatientPublic(PatientBase):
    id: int
    allergies: list[str] | None = None
    status: str
    last_visit: datetime | None = None
    created_at: datetime
