import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clinic.api.routes import appointments, auth, dental_records, patients, reports, slots, treatments, users
from clinic.core.config import _ENV_FILE, settings
from clinic.core.db import async_session_maker
from clinic.core.errors import ClinicError
from clinic.repositories.appointment_repository import SQLAppointmentRepository
from clinic.services.appointment_service import AppointmentService
from clinic.services.email_service import send_appointment_email
from clinic.services.notification_service import QueueNotifier

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


async def run_reminder_sweep() -> int:
    """Flag upcoming appointments as reminded, then email the patients once the flags are committed."""
    queue = QueueNotifier()
    try:
        async with async_session_maker() as session:
            try:
                service = AppointmentService(SQLAppointmentRepository(session), queue)
                n = await service.send_due_reminders(datetime.now(UTC), settings.reminder_lead_hours)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    except Exception as e:
        logger.exception("Reminder sweep failed: %s", e)
        return 0
    for notice in queue.pending:
        try:
            await asyncio.to_thread(send_appointment_email, notice)
        except Exception:
            logger.exception("Reminder for appointment %s could not be sent", notice.appointment_id)
    if n:
        logger.info("Reminder sweep: %d appointment(s) reminded", n)
    return n


async def _reminder_loop() -> None:
    while True:
        await run_reminder_sweep()
        await asyncio.sleep(settings.reminder_interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    task = None
    if settings.reminders_enabled:
        logger.info(
            "Appointment reminders: every %ds, %dh ahead",
            settings.reminder_interval_seconds,
            settings.reminder_lead_hours,
        )
        task = asyncio.create_task(_reminder_loop())
    else:
        logger.info("Appointment reminders: disabled")
    if not settings.email_enabled:
        logger.warning("SMTP is not configured; patient emails will be skipped")
    yield
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


app = FastAPI(
    title="Dental Clinic API",
    description="Backend for a dental clinic: staff, patients, treatments, dental records and appointment scheduling",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Refresh-Token"],
)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(slots.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(patients.router, prefix="/api/v1")
app.include_router(treatments.router, prefix="/api/v1")
app.include_router(dental_records.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type, X-Refresh-Token",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(ClinicError)
async def clinic_error_handler(request: Request, exc: ClinicError) -> JSONResponse:
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return actual error in JSON; include CORS so 500 responses are not blocked by browser."""
    origin = request.headers.get("origin")
    headers = _cors_headers(origin)
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    detail = f"{type(exc).__name__}: {str(exc)}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
