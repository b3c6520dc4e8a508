from datetime import date
from decimal import Decimal

from pydantic import BaseModel, EmailStr, Field

from clinic.models.user import UserRole


class CreateUserRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    role: UserRole
    specialization: str | None = None
    # Validated by the service so bad schedules surface as invalid_argument
    working_hours: dict | None = None


class UpdateUserRequest(BaseModel):
    email: EmailStr | None = None
    first_name: str | None = Field(default=None, min_length=1, max_length=50)
    last_name: str | None = Field(default=None, min_length=1, max_length=50)
    role: UserRole | None = None
    specialization: str | None = None


class UserStatsResponse(BaseModel):
    period_start: date
    period_end: date
    total_appointments: int
    completed_appointments: int
    cancelled_appointments: int
    revenue: Decimal
