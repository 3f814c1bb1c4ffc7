"""Domain models."""

from hospital_scheduling.models.appointments import Appointment, AppointmentStatus

__all__ = [
    "Appointment",
    "AppointmentStatus",
]
