from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from hospital_scheduling.config import Settings
from hospital_scheduling.main import create_app
from hospital_scheduling.models.appointments import Appointment
from hospital_scheduling.repositories.appointment_repository import AppointmentRepository
from hospital_scheduling.services.appointment_service import AppointmentService
from hospital_scheduling.services.directory import DoctorDirectory, PatientDirectory

# Noon on the day before most test bookings
NOW = datetime(2029, 12, 31, 12, 0)
TODAY = "2029-12-31"
TOMORROW = "2030-01-01"


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    """Deterministic wall clock fixed at NOW."""
    return FrozenClock(NOW)


@pytest.fixture
def appointment_file(tmp_path: Path) -> Path:
    """Backing file path inside a temporary data directory."""
    return tmp_path / "data" / "appointments.txt"


@pytest.fixture
def repository(appointment_file: Path, clock: FrozenClock) -> AppointmentRepository:
    """Empty file-backed repository."""
    return AppointmentRepository(
        appointment_file,
        backup_dir=appointment_file.parent / "backup",
        clock=clock,
    )


@pytest.fixture
def patients() -> PatientDirectory:
    """Registered patients."""
    return PatientDirectory(["alice", "bob", "carol"])


@pytest.fixture
def doctors() -> DoctorDirectory:
    """Registered doctors with their consultation fees."""
    return DoctorDirectory({"D1": Decimal("150.00"), "D2": Decimal("200.00")})


@pytest.fixture
def service(
    repository: AppointmentRepository,
    patients: PatientDirectory,
    doctors: DoctorDirectory,
    clock: FrozenClock,
) -> AppointmentService:
    """Scheduling service over the temporary repository."""
    return AppointmentService(repository, patients, doctors, clock=clock)


@pytest.fixture
def make_appointment() -> Callable[..., Appointment]:
    """Factory for appointments with sensible defaults."""

    def _make(**overrides) -> Appointment:
        values = {
            "id": "APT001",
            "patient_ref": "alice",
            "doctor_ref": "D1",
            "date": TOMORROW,
            "time": "09:00",
            "reason": "Fever",
            "price": Decimal("150.00"),
        }
        values.update(overrides)
        return Appointment(**values)

    return _make


@pytest.fixture
def app(
    appointment_file: Path,
    repository: AppointmentRepository,
    patients: PatientDirectory,
    doctors: DoctorDirectory,
    clock: FrozenClock,
) -> FastAPI:
    """Application wired to the temporary repository."""
    settings = Settings(appointment_file=str(appointment_file), log_format="console")
    return create_app(
        settings,
        repository=repository,
        patients=patients,
        doctors=doctors,
        clock=clock,
    )


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
