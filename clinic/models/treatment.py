from decimal import Decimal
from enum import Enum

from sqlmodel import Field, SQLModel


class TreatmentCategory(str, Enum):
    GENERAL = "general"
    COSMETIC = "cosmetic"
    ORTHODONTICS = "orthodontics"
    SURGERY = "surgery"
    PERIODONTICS = "periodontics"
    ENDODONTICS = "endodontics"
    PEDIATRIC = "pediatric"


class TreatmentBase(SQLModel):
    name: str = Field(min_length=3, max_length=100, unique=True, index=True)
    description: str | None = Field(default=None, max_length=1000)
    cost: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    duration: int = Field(gt=0)  # minutes
    category: TreatmentCategory = TreatmentCategory.GENERAL


class Treatment(TreatmentBase, table=True):
    __tablename__ = "treatments"
    id: int | None = Field(default=None, primary_key=True)
    status: str = Field(default="active", max_length=16)


class TreatmentCreate(TreatmentBase):
    pass


class TreatmentUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=3, max_length=100)
    description: str | None = None
    cost: Decimal | None = Field(default=None, ge=0)
    # Editing the duration never changes appointments that are already booked
    duration: int | None = Field(default=None, gt=0)
    category: TreatmentCategory | None = None
    status: str | None = None


class TreatmentPublic(TreatmentBase):
    id: int
    status: str
