from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class _FromService(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class RevenueBucketOut(_FromService):
    period: str
    appointment_count: int
    total_revenue: Decimal


class RevenueReportOut(_FromService):
    start_date: date
    end_date: date
    group_by: str
    buckets: list[RevenueBucketOut]
    total_revenue: Decimal
    total_appointments: int
    average_revenue_per_period: Decimal


class DentistPerformanceOut(_FromService):
    dentist_id: int
    first_name: str
    last_name: str
    total_appointments: int
    completed_appointments: int
    cancelled_appointments: int
    no_show_appointments: int
    average_duration: float
    revenue: Decimal


class TreatmentPopularityOut(_FromService):
    treatment_id: int
    name: str
    cost: Decimal
    appointment_count: int
    total_revenue: Decimal


class NewPatientsDayOut(_FromService):
    day: date
    new_patients: int


class NewPatientsReportOut(_FromService):
    start_date: date
    end_date: date
    daily: list[NewPatientsDayOut]
    total_new_patients: int
    average_new_patients_per_day: float


class DashboardOut(_FromService):
    today_appointments: int
    monthly_revenue: Decimal
    active_patients: int
    pending_appointments: int
