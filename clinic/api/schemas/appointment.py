from datetime import datetime

from pydantic import BaseModel


class SlotInfo(BaseModel):
    start: datetime
    end: datetime


class AvailabilityResponse(BaseModel):
    date: str  # YYYY-MM-DD
    dentist_id: int
    duration: int
    slots: list[SlotInfo]


class BookAppointmentRequest(BaseModel):
    patient_id: int
    dentist_id: int
    treatment_id: int
    date: datetime
    notes: str | None = None


class RescheduleRequest(BaseModel):
    date: datetime | None = None
    dentist_id: int | None = None
    notes: str | None = None


class CancelRequest(BaseModel):
    reason: str | None = None


class CompleteRequest(BaseModel):
    notes: str | None = None
