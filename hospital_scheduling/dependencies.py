"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from hospital_scheduling.services.appointment_service import AppointmentService


def get_appointment_service(request: Request) -> AppointmentService:
    """Scheduling service built at application startup."""
    return request.app.state.appointment_service


# Type aliases for dependency injection
SchedulingService = Annotated[AppointmentService, Depends(get_appointment_service)]
