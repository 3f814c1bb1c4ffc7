"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator

from hospital_scheduling.api.v1.router import api_router
from hospital_scheduling.config import Settings, settings as default_settings
from hospital_scheduling.core.clock import Clock, system_clock
from hospital_scheduling.middleware.error_handler import register_exception_handlers
from hospital_scheduling.middleware.logging import LoggingMiddleware, configure_logging
from hospital_scheduling.repositories.appointment_repository import AppointmentRepository
from hospital_scheduling.services.appointment_service import AppointmentService
from hospital_scheduling.services.directory import DoctorDirectory, PatientDirectory

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Loads the appointment file on startup. Every mutation is written through
    as it happens, so nothing is flushed on shutdown.
    """
    repository: AppointmentRepository = app.state.appointment_repository
    logger.info("application_startup", appointment_file=str(repository.file_path))

    if not repository.load():
        logger.error("appointment_store_unavailable", path=str(repository.file_path))

    yield

    logger.info("application_shutdown")


def create_app(
    settings: Settings | None = None,
    *,
    repository: AppointmentRepository | None = None,
    patients: PatientDirectory | None = None,
    doctors: DoctorDirectory | None = None,
    clock: Clock = system_clock,
) -> FastAPI:
    """
    Build the application and its scheduling components.

    The store, directories and service are created once here and shared
    through ``app.state``.
    """
    settings = settings or default_settings

    if repository is None:
        repository = AppointmentRepository.from_settings(settings, clock=clock)
    if patients is None:
        patients = (
            PatientDirectory.from_file(settings.patient_file, settings.field_delimiter)
            if settings.patient_file
            else PatientDirectory()
        )
    if doctors is None:
        doctors = (
            DoctorDirectory.from_file(settings.doctor_file, settings.field_delimiter)
            if settings.doctor_file
            else DoctorDirectory()
        )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Appointment scheduling core for a hospital record keeper",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.appointment_repository = repository
    app.state.patient_directory = patients
    app.state.doctor_directory = doctors
    app.state.appointment_service = AppointmentService.from_settings(
        settings, repository, patients, doctors, clock=clock
    )

    app.add_middleware(LoggingMiddleware)

    register_exception_handlers(app)

    app.include_router(api_router, prefix=settings.api_v1_prefix)

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        excluded_handlers=["/docs", "/redoc", "/openapi.json"],
        registry=CollectorRegistry(),
    ).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """Welcome message."""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "docs": "/docs",
        }

    return app


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "hospital_scheduling.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.reload,
        log_level=default_settings.log_level.lower(),
    )
