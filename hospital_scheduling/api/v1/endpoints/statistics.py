"""Appointment statistics endpoints."""

from fastapi import APIRouter

from hospital_scheduling.dependencies import SchedulingService
from hospital_scheduling.schemas.appointments import RevenueSummary, StatusCountsResponse

router = APIRouter()


@router.get("/revenue", response_model=RevenueSummary, summary="Revenue summary")
def get_revenue(service: SchedulingService) -> RevenueSummary:
    """Total, paid and unpaid revenue over non-cancelled appointments."""
    return service.get_revenue_summary()


@router.get("/status-counts", response_model=StatusCountsResponse, summary="Appointments per status")
def get_status_counts(service: SchedulingService) -> StatusCountsResponse:
    counts = service.get_status_counts()
    return StatusCountsResponse(
        total=sum(counts.values()),
        counts={status.label: count for status, count in counts.items()},
    )
