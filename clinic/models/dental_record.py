from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, field_validator
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class ToothCondition(str, Enum):
    HEALTHY = "healthy"
    DECAYED = "decayed"
    FILLED = "filled"
    MISSING = "missing"
    CROWN = "crown"
    BRIDGE = "bridge"
    IMPLANT = "implant"


class ToothState(BaseModel):
    condition: ToothCondition = ToothCondition.HEALTHY
    surfaces: list[str] = []
    treatment: str | None = None
    notes: str | None = None


class DentalRecord(SQLModel, table=True):
    __tablename__ = "dental_records"
    id: int | None = Field(default=None, primary_key=True)
    patient_id: int = Field(foreign_key="patients.id", index=True)
    dentist_id: int = Field(foreign_key="users.id", index=True)
    date: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime)
    diagnosis: str
    procedures: list[str] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    treatment_plan: str | None = None
    observations: str | None = None
    # Tooth number (1-32, as string key) -> ToothState
    odontogram: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    next_visit: datetime | None = Field(default=None, sa_type=DateTime)
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime)
    updated_at: datetime | None = Field(default=None, sa_type=DateTime)


def _check_tooth_numbers(value: dict[int, ToothState] | None) -> dict[int, ToothState] | None:
    if value is None:
        return value
    bad = sorted(n for n in value if not 1 <= n <= 32)
    if bad:
        raise ValueError(f"tooth numbers must be between 1 and 32, got {bad}")
    return value


class DentalRecordCreate(SQLModel):
    patient_id: int
    diagnosis: str
    dentist_id: int | None = None  # defaults to the recording user
    date: datetime | None = None
    procedures: list[str] | None = None
    treatment_plan: str | None = None
    observations: str | None = None
    odontogram: dict[int, ToothState] | None = None
    next_visit: datetime | None = None

    @field_validator("odontogram")
    @classmethod
    def _tooth_numbers(cls, value: dict[int, ToothState] | None) -> dict[int, ToothState] | None:
        return _check_tooth_numbers(value)


class DentalRecordUpdate(SQLModel):
    diagnosis: str | None = None
    procedures: list[str] | None = None
    treatment_plan: str | None = None
    observations: str | None = None
    # Replaces the stored odontogram as a whole
    odontogram: dict[int, ToothState] | None = None
    next_visit: datetime | None = None

    @field_validator("odontogram")
    @classmethod
    def _tooth_numbers(cls, value: dict[int, ToothState] | None) -> dict[int, ToothState] | None:
        return _check_tooth_numbers(value)


class DentalRecordPublic(SQLModel):
    id: int
    patient_id: int
    dentist_id: int
    date: datetime
    diagnosis: str
    procedures: list[str] | None = None
    treatment_plan: str | None = None
    observations: str | None = None
    odontogram: dict[str, Any] | None = None
    next_visit: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None
