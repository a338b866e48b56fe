import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from uni_health.core.errors import ClinicError, InternalError
from uni_health.core.settings import settings, validate_settings
from uni_health.db.session import SessionLocal, engine
from uni_health.models import Base
from uni_health.routers.appointments import router as appointments_router
from uni_health.routers.audit import router as audit_router
from uni_health.routers.auth import router as auth_router
from uni_health.routers.clinic_settings import router as clinic_settings_router
from uni_health.routers.clinical import router as clinical_router
from uni_health.routers.doctors import router as doctors_router
from uni_health.routers.holidays import router as holidays_router
from uni_health.routers.users import router as users_router
from uni_health.services.users import seed_initial_admin

app = FastAPI(title="University Clinic API", version="0.1.0")
logger = logging.getLogger("uni_health.startup")
request_logger = logging.getLogger("uni_health.requests")


def _field_name(loc) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


@app.exception_handler(ClinicError)
async def clinic_error_handler(request: Request, exc: ClinicError):
    payload = exc.to_dict()
    if isinstance(exc, InternalError) and settings.debug and exc.detail:
        payload["detail"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=payload)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        errors.setdefault(_field_name(error.get("loc", ())), []).append(error.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=422,
        content={"message": "The given data was invalid.", "code": "validation_error", "errors": errors},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = request.headers.get("x-request-id")
    request_logger.exception("Unhandled server error", extra={"request_id": request_id})
    payload = {"detail": "Internal server error"}
    if settings.debug:
        payload["error"] = str(exc)
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=500, content=payload)


@app.on_event("startup")
def startup():
    validate_settings(settings)
    Base.metadata.create_all(bind=engine)

    admin_email = str(settings.admin_email)
    db: Session = SessionLocal()
    try:
        created = seed_initial_admin(db, email=admin_email, password=settings.admin_password.strip())
        if created:
            logger.info("Initial admin created for %s.", admin_email)
        else:
            logger.info("Initial admin not created (users already exist).")
    finally:
        db.close()


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(appointments_router)
app.include_router(doctors_router)
app.include_router(clinical_router)
app.include_router(holidays_router)
app.include_router(audit_router)
app.include_router(clinic_settings_router)
