"""Health check endpoints."""

from fastapi import APIRouter, Request, status
from pydantic import BaseModel

from hospital_scheduling.config import Settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Health plus the state of the appointment file."""

    storage: str
    appointment_file: str
    appointments: int


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Report that the process is up."""
    settings: Settings = request.app.state.settings
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Detailed health check",
)
def detailed_health_check(request: Request) -> DetailedHealthResponse:
    """
    Health check including the appointment store.

    The store is loaded if it has not been yet; a file that exists but cannot
    be read reports the service as degraded.

    Returns:
        Health status with store state and number of appointments held
    """
    settings: Settings = request.app.state.settings
    repository = request.app.state.appointment_repository
    storage_healthy = repository.load()

    return DetailedHealthResponse(
        status="healthy" if storage_healthy else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        storage="healthy" if storage_healthy else "unhealthy",
        appointment_file=str(repository.file_path),
        appointments=repository.count() if storage_healthy else 0,
    )
