"""Doctor availability endpoints."""

from fastapi import APIRouter, Query

from hospital_scheduling.dependencies import SchedulingService
from hospital_scheduling.schemas.appointments import AvailableSlotsResponse

router = APIRouter()


@router.get(
    "/doctors/{doctor_ref}/available-slots",
    response_model=AvailableSlotsResponse,
    summary="Free slots for a doctor on a day",
)
def get_available_slots(
    doctor_ref: str,
    service: SchedulingService,
    date: str = Query(..., description="Day to inspect (YYYY-MM-DD)"),
) -> AvailableSlotsResponse:
    """
    List the standard slots still open for booking.

    Args:
        doctor_ref: Doctor ID
        service: Scheduling service
        date: Day to inspect

    Returns:
        Open slots in time order
    """
    return AvailableSlotsResponse(
        doctor_ref=doctor_ref,
        date=date,
        slots=service.get_available_slots(doctor_ref, date),
    )
