from datetime import datetime

from pydantic import BaseModel


class CountItem(BaseModel):
    name: str
    count: int


class DentalSummaryResponse(BaseModel):
    total_records: int
    last_visit: datetime | None = None
    common_procedures: list[CountItem]
    teeth_conditions: list[CountItem]
