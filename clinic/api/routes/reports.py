from datetime import UTC, date, datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.api.deps import get_session, require_roles
from clinic.api.schemas.report import (
    DashboardOut,
    DentistPerformanceOut,
    NewPatientsReportOut,
    RevenueReportOut,
    TreatmentPopularityOut,
)
from clinic.models.user import User, UserRole
from clinic.services.availability_service import to_clinic_time
from clinic.services.report_service import (
    GroupBy,
    dashboard_stats,
    dentist_performance_report,
    new_patients_report,
    popular_treatments_report,
    revenue_report,
)

router = APIRouter(prefix="/reports", tags=["reports"])

_admin = require_roles(UserRole.ADMIN)


@router.get("/revenue", response_model=RevenueReportOut)
async def revenue(
    start_date: date = Query(...),
    end_date: date = Query(..., description="Inclusive"),
    group_by: GroupBy = Query("day"),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_admin),
) -> RevenueReportOut:
    return RevenueReportOut.model_validate(await revenue_report(session, start_date, end_date, group_by))


@router.get("/dentists", response_model=list[DentistPerformanceOut])
async def dentist_performance(
    start_date: date = Query(...),
    end_date: date = Query(..., description="Inclusive"),
    dentist_id: int | None = Query(None),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_admin),
) -> list[DentistPerformanceOut]:
    rows = await dentist_performance_report(session, start_date, end_date, dentist_id)
    return [DentistPerformanceOut.model_validate(r) for r in rows]


@router.get("/treatments", response_model=list[TreatmentPopularityOut])
async def popular_treatments(
    start_date: date = Query(...),
    end_date: date = Query(..., description="Inclusive"),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_admin),
) -> list[TreatmentPopularityOut]:
    rows = await popular_treatments_report(session, start_date, end_date)
    return [TreatmentPopularityOut.model_validate(r) for r in rows]


@router.get("/new-patients", response_model=NewPatientsReportOut)
async def new_patients(
    start_date: date = Query(...),
    end_date: date = Query(..., description="Inclusive"),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(_admin),
) -> NewPatientsReportOut:
    return NewPatientsReportOut.model_validate(await new_patients_report(session, start_date, end_date))


@router.get("/dashboard", response_model=DashboardOut)
async def dashboard(
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.DENTIST)),
) -> DashboardOut:
    now = to_clinic_time(datetime.now(UTC))
    return DashboardOut.model_validate(await dashboard_stats(session, now))
