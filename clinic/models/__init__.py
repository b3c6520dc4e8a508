from clinic.models.user import User, UserCreate, UserPublic, UserRole, UserStatus, UserUpdate
from clinic.models.refresh_token import RefreshToken
from clinic.models.patient import Patient, PatientCreate, PatientPublic, PatientUpdate
from clinic.models.treatment import Treatment, TreatmentCreate, TreatmentPublic, TreatmentUpdate
from clinic.models.appointment import (
    Appointment,
    AppointmentPublic,
    AppointmentStatus,
    NotificationKind,
)
from clinic.models.dental_record import DentalRecord, DentalRecordCreate, DentalRecordPublic

__all__ = [
    "User",
    "UserCreate",
    "UserPublic",
    "UserRole",
    "UserStatus",
    "UserUpdate",
    "RefreshToken",
    "Patient",
    "PatientCreate",
    "PatientPublic",
    "PatientUpdate",
    "Treatment",
    "TreatmentCreate",
    "TreatmentPublic",
    "TreatmentUpdate",
    "Appointment",
    "AppointmentPublic",
    "AppointmentStatus",
    "NotificationKind",
    "DentalRecord",
    "DentalRecordCreate",
    "DentalRecordPublic",
]
