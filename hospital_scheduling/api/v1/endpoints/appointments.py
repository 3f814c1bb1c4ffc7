"""Appointment endpoints."""

from fastapi import APIRouter, Query, status

from hospital_scheduling.core.exceptions import BadRequestException, NotFoundException
from hospital_scheduling.dependencies import SchedulingService
from hospital_scheduling.models.appointments import AppointmentStatus
from hospital_scheduling.schemas.appointments import (
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentNotesUpdate,
    AppointmentReschedule,
    AppointmentResponse,
)

router = APIRouter()


@router.post(
    "",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book new appointment",
)
def book_appointment(
    data: AppointmentCreate,
    service: SchedulingService,
) -> AppointmentResponse:
    """
    Book an appointment in a free standard slot.

    Args:
        data: Booking data
        service: Scheduling service

    Returns:
        Created appointment
    """
    appointment = service.book_appointment_or_raise(
        data.patient_ref,
        data.doctor_ref,
        data.date,
        data.time,
        data.reason,
    )
    return AppointmentResponse.from_appointment(appointment)


@router.get(
    "",
    response_model=AppointmentListResponse,
    summary="List appointments",
)
def list_appointments(
    service: SchedulingService,
    patient_ref: str | None = Query(None),
    doctor_ref: str | None = Query(None),
    date: str | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
) -> AppointmentListResponse:
    """
    List appointments with optional filters, in date and time order.

    Args:
        service: Scheduling service
        patient_ref: Filter by patient
        doctor_ref: Filter by doctor
        date: Filter by day (YYYY-MM-DD)
        status_filter: Filter by status name, e.g. ``scheduled``

    Returns:
        Matching appointments
    """
    wanted_status = None
    if status_filter:
        try:
            wanted_status = AppointmentStatus.from_label(status_filter)
        except ValueError as e:
            raise BadRequestException(str(e)) from None

    items = [
        a
        for a in service.get_all_appointments()
        if (patient_ref is None or a.patient_ref == patient_ref)
        and (doctor_ref is None or a.doctor_ref == doctor_ref)
        and (date is None or a.date == date)
        and (wanted_status is None or a.status is wanted_status)
    ]
    items.sort(key=lambda a: (a.date, a.time))

    return AppointmentListResponse(
        total=len(items),
        items=[AppointmentResponse.from_appointment(a) for a in items],
    )


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    summary="Get appointment by ID",
)
def get_appointment(appointment_id: str, service: SchedulingService) -> AppointmentResponse:
    """Get a single appointment."""
    appointment = service.get_appointment(appointment_id)
    if appointment is None:
        raise NotFoundException(f"Appointment {appointment_id} not found")
    return AppointmentResponse.from_appointment(appointment)


@router.patch(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    summary="Reschedule appointment",
)
def reschedule_appointment(
    appointment_id: str,
    data: AppointmentReschedule,
    service: SchedulingService,
) -> AppointmentResponse:
    """Move an appointment to another date and/or time."""
    appointment = service.edit_appointment_or_raise(appointment_id, data.date, data.time)
    return AppointmentResponse.from_appointment(appointment)


@router.put(
    "/{appointment_id}/notes",
    response_model=AppointmentResponse,
    summary="Replace appointment notes",
)
def update_notes(
    appointment_id: str,
    data: AppointmentNotesUpdate,
    service: SchedulingService,
) -> AppointmentResponse:
    """Replace the free-text notes of an appointment."""
    appointment = service.update_notes_or_raise(appointment_id, data.notes)
    return AppointmentResponse.from_appointment(appointment)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    summary="Cancel appointment",
)
def cancel_appointment(appointment_id: str, service: SchedulingService) -> AppointmentResponse:
    """Cancel an appointment more than the cancellation window ahead."""
    return AppointmentResponse.from_appointment(service.cancel_appointment_or_raise(appointment_id))


@router.post(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    summary="Mark appointment completed",
)
def complete_appointment(appointment_id: str, service: SchedulingService) -> AppointmentResponse:
    return AppointmentResponse.from_appointment(service.mark_as_completed_or_raise(appointment_id))


@router.post(
    "/{appointment_id}/no-show",
    response_model=AppointmentResponse,
    summary="Mark appointment no-show",
)
def no_show_appointment(appointment_id: str, service: SchedulingService) -> AppointmentResponse:
    return AppointmentResponse.from_appointment(service.mark_as_no_show_or_raise(appointment_id))


@router.post(
    "/{appointment_id}/pay",
    response_model=AppointmentResponse,
    summary="Mark appointment paid",
)
def pay_appointment(appointment_id: str, service: SchedulingService) -> AppointmentResponse:
    return AppointmentResponse.from_appointment(service.mark_as_paid_or_raise(appointment_id))
