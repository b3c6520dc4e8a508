from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class PatientStatsResponse(BaseModel):
    total_appointments: int
    total_spent: Decimal
    last_visit: datetime | None = None
