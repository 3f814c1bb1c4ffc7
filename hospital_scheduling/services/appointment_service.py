"""Appointment service for scheduling business rules."""

from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import TypeVar

import structlog
from pydantic import ValidationError

from hospital_scheduling.config import Settings
from hospital_scheduling.core.clock import Clock, system_clock
from hospital_scheduling.core.exceptions import (
    AppException,
    BadRequestException,
    ConflictException,
    InvalidStatusTransition,
    NotFoundException,
    PersistenceException,
    ValidationException,
)
from hospital_scheduling.core.timeutils import (
    combine,
    format_date,
    format_time,
    parse_date,
    standard_time_slots,
)
from hospital_scheduling.models.appointments import Appointment, AppointmentStatus
from hospital_scheduling.repositories.appointment_repository import AppointmentStore
from hospital_scheduling.schemas.appointments import RevenueSummary
from hospital_scheduling.services.directory import DoctorLookup, PatientLookup

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Statuses whose price counts towards revenue
REVENUE_STATUSES = frozenset({AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED})


class AppointmentService:
    """
    Service for booking and managing appointments.

    Every operation comes in two forms. ``book_appointment``, ``cancel_appointment``
    and friends return None/False on any failure. The ``*_or_raise`` variants
    raise an :class:`AppException` subclass naming the rule that failed.
    """

    def __init__(
        self,
        store: AppointmentStore,
        patients: PatientLookup,
        doctors: DoctorLookup,
        *,
        slot_start_hour: int = 8,
        slot_end_hour: int = 17,
        slot_minutes: int = 30,
        cancel_window_minutes: int = 60,
        clock: Clock = system_clock,
    ):
        """Initialize service with its store and lookup collaborators."""
        self.store = store
        self.patients = patients
        self.doctors = doctors
        self.cancel_window_minutes = cancel_window_minutes
        self._clock = clock
        self._standard_slots = standard_time_slots(slot_start_hour, slot_end_hour, slot_minutes)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: AppointmentStore,
        patients: PatientLookup,
        doctors: DoctorLookup,
        clock: Clock = system_clock,
    ) -> "AppointmentService":
        """Build a service using the scheduling settings."""
        return cls(
            store,
            patients,
            doctors,
            slot_start_hour=settings.slot_start_hour,
            slot_end_hour=settings.slot_end_hour,
            slot_minutes=settings.slot_minutes,
            cancel_window_minutes=settings.cancel_window_minutes,
            clock=clock,
        )

    # ==================== Helpers ====================

    def _attempt(self, operation: str, func: Callable[..., T], *args: object) -> T | None:
        try:
            return func(*args)
        except AppException as e:
            logger.info(
                "appointment_rejected",
                operation=operation,
                error=e.__class__.__name__,
                reason=e.message,
            )
            return None

    def _require(self, appointment_id: str) -> Appointment:
        appointment = self.store.get_by_id(appointment_id)
        if appointment is None:
            raise NotFoundException(f"Appointment {appointment_id} not found")
        return appointment

    def _persist(self, appointment: Appointment) -> Appointment:
        if not self.store.update(appointment):
            raise PersistenceException(f"Failed to save appointment {appointment.id}")
        return appointment

    def _check_slot_time(self, date: str, time: str) -> datetime:
        """Validate format, grid alignment and that the slot lies in the future."""
        scheduled_at = combine(date, time)
        if scheduled_at is None:
            raise ValidationException("Date must be YYYY-MM-DD and time HH:MM")
        if time not in self._standard_slots:
            raise ValidationException(f"{time} is not a standard appointment slot")
        if scheduled_at <= self._clock():
            raise ValidationException("Appointment must be scheduled in the future")
        return scheduled_at

    def _check_text(self, value: str, field: str) -> None:
        delimiter = self.store.delimiter
        if "\n" in value or "\r" in value or delimiter in value:
            raise ValidationException(f"{field} must not contain line breaks or {delimiter!r}")

    # ==================== Booking ====================

    def book_appointment_or_raise(
        self,
        patient_ref: str,
        doctor_ref: str,
        date: str,
        time: str,
        reason: str,
    ) -> Appointment:
        """
        Book a new appointment.

        Args:
            patient_ref: Patient username
            doctor_ref: Doctor ID
            date: Appointment date (YYYY-MM-DD)
            time: Appointment time (HH:MM), on the standard grid
            reason: Purpose of the visit

        Returns:
            Created appointment, status scheduled and unpaid

        Raises:
            ValidationException: Malformed or past date/time, off-grid time, blank reason
            NotFoundException: Unknown patient or doctor
            ConflictException: Slot already taken
            PersistenceException: Appointment could not be saved
        """
        self._check_slot_time(date, time)

        reason = (reason or "").strip()
        if not reason:
            raise ValidationException("Reason must not be empty")
        self._check_text(reason, "Reason")

        if not self.patients.exists(patient_ref):
            raise NotFoundException(f"Patient {patient_ref} not found")
        if not self.doctors.exists(doctor_ref):
            raise NotFoundException(f"Doctor {doctor_ref} not found")

        with self.store.lock:
            if not self.store.is_slot_available(doctor_ref, date, time):
                raise ConflictException(f"Doctor {doctor_ref} is already booked at {date} {time}")

            try:
                appointment = Appointment(
                    id=self.store.get_next_id(),
                    patient_ref=patient_ref,
                    doctor_ref=doctor_ref,
                    date=date,
                    time=time,
                    reason=reason,
                    price=self.doctors.get_consultation_fee(doctor_ref),
                    paid=False,
                    status=AppointmentStatus.SCHEDULED,
                )
            except ValidationError as e:
                raise ValidationException(
                    f"Invalid appointment: {e.errors()[0]['msg']}"
                ) from None
            if not self.store.add(appointment):
                raise PersistenceException(f"Failed to save appointment {appointment.id}")

        logger.info(
            "appointment_booked",
            appointment_id=appointment.id,
            patient_ref=patient_ref,
            doctor_ref=doctor_ref,
            date=date,
            time=time,
        )
        return appointment

    def book_appointment(
        self,
        patient_ref: str,
        doctor_ref: str,
        date: str,
        time: str,
        reason: str,
    ) -> Appointment | None:
        """Book a new appointment; None if any rule fails."""
        return self._attempt(
            "book",
            self.book_appointment_or_raise,
            patient_ref,
            doctor_ref,
            date,
            time,
            reason,
        )

    # ==================== Editing ====================

    def edit_appointment_or_raise(
        self,
        appointment_id: str,
        new_date: str | None = None,
        new_time: str | None = None,
    ) -> Appointment:
        """
        Move an appointment to another date and/or time.

        Empty or omitted arguments keep the current value. Moving an appointment
        to the slot it already holds always succeeds.

        Raises:
            NotFoundException: Unknown appointment
            ConflictException: Not scheduled, or target slot taken
            BadRequestException: Appointment starts within the edit window
            ValidationException: Malformed, off-grid or past target slot
        """
        with self.store.lock:
            appointment = self._require(appointment_id)

            target_date = (new_date or "").strip() or appointment.date
            target_time = (new_time or "").strip() or appointment.time
            if (target_date, target_time) == (appointment.date, appointment.time):
                return appointment

            self._check_editable(appointment)
            self._check_slot_time(target_date, target_time)
            if not self.store.is_slot_available(
                appointment.doctor_ref, target_date, target_time, exclude_id=appointment.id
            ):
                raise ConflictException(
                    f"Doctor {appointment.doctor_ref} is already booked at "
                    f"{target_date} {target_time}"
                )

            previous = appointment.date_time
            appointment.reschedule(target_date, target_time)
            self._persist(appointment)

        logger.info(
            "appointment_rescheduled",
            appointment_id=appointment.id,
            previous=previous,
            current=appointment.date_time,
        )
        return appointment

    def edit_appointment(
        self,
        appointment_id: str,
        new_date: str | None = None,
        new_time: str | None = None,
    ) -> bool:
        """Move an appointment; False if any rule fails."""
        return (
            self._attempt("edit", self.edit_appointment_or_raise, appointment_id, new_date, new_time)
            is not None
        )

    def reschedule_appointment(
        self,
        appointment_id: str,
        new_date: str | None = None,
        new_time: str | None = None,
    ) -> bool:
        """Alias of :meth:`edit_appointment`."""
        return self.edit_appointment(appointment_id, new_date, new_time)

    def _check_editable(self, appointment: Appointment) -> None:
        if appointment.status.is_terminal:
            raise InvalidStatusTransition(
                f"Appointment {appointment.id} is {appointment.status.label}"
            )
        if not appointment.can_edit(self._clock(), self.cancel_window_minutes):
            raise BadRequestException(
                f"Appointment {appointment.id} starts within "
                f"{self.cancel_window_minutes} minutes and can no longer be changed"
            )

    def can_edit(self, appointment_id: str) -> bool:
        """Whether the appointment may still be rescheduled."""
        appointment = self.store.get_by_id(appointment_id)
        return appointment is not None and appointment.can_edit(
            self._clock(), self.cancel_window_minutes
        )

    def can_cancel(self, appointment_id: str) -> bool:
        """Whether the appointment may still be cancelled."""
        appointment = self.store.get_by_id(appointment_id)
        return appointment is not None and appointment.can_cancel(
            self._clock(), self.cancel_window_minutes
        )

    # ==================== Status management ====================

    def cancel_appointment_or_raise(self, appointment_id: str) -> Appointment:
        """
        Cancel a scheduled appointment, freeing its slot.

        Raises:
            NotFoundException: Unknown appointment
            InvalidStatusTransition: Appointment not scheduled
            BadRequestException: Appointment starts within the cancellation window
        """
        with self.store.lock:
            appointment = self._require(appointment_id)
            self._check_editable(appointment)
            appointment.mark_as_cancelled()
            self._persist(appointment)

        logger.info(
            "appointment_cancelled",
            appointment_id=appointment.id,
            doctor_ref=appointment.doctor_ref,
            date_time=appointment.date_time,
        )
        return appointment

    def cancel_appointment(self, appointment_id: str) -> bool:
        """Cancel an appointment; False if not allowed."""
        return self._attempt("cancel", self.cancel_appointment_or_raise, appointment_id) is not None

    def _change_status(
        self,
        appointment_id: str,
        transition: Callable[[Appointment], None],
    ) -> Appointment:
        with self.store.lock:
            appointment = self._require(appointment_id)
            previous = appointment.status
            transition(appointment)
            self._persist(appointment)

        logger.info(
            "appointment_status_changed",
            appointment_id=appointment.id,
            previous=previous.label,
            current=appointment.status.label,
        )
        return appointment

    def mark_as_completed_or_raise(self, appointment_id: str) -> Appointment:
        """Mark a scheduled appointment completed."""
        return self._change_status(appointment_id, Appointment.mark_as_completed)

    def mark_as_completed(self, appointment_id: str) -> bool:
        return self._attempt("complete", self.mark_as_completed_or_raise, appointment_id) is not None

    def mark_as_no_show_or_raise(self, appointment_id: str) -> Appointment:
        """Mark a scheduled appointment as a no-show."""
        return self._change_status(appointment_id, Appointment.mark_as_no_show)

    def mark_as_no_show(self, appointment_id: str) -> bool:
        return self._attempt("no_show", self.mark_as_no_show_or_raise, appointment_id) is not None

    def mark_as_paid_or_raise(self, appointment_id: str) -> Appointment:
        """Record payment regardless of status."""
        with self.store.lock:
            appointment = self._require(appointment_id)
            appointment.mark_as_paid()
            self._persist(appointment)

        logger.info("appointment_paid", appointment_id=appointment.id, price=str(appointment.price))
        return appointment

    def mark_as_paid(self, appointment_id: str) -> bool:
        return self._attempt("pay", self.mark_as_paid_or_raise, appointment_id) is not None

    def update_notes_or_raise(self, appointment_id: str, notes: str) -> Appointment:
        """Replace the free-text notes; allowed in any status."""
        notes = (notes or "").strip()
        self._check_text(notes, "Notes")
        with self.store.lock:
            appointment = self._require(appointment_id)
            appointment.notes = notes
            return self._persist(appointment)

    def update_notes(self, appointment_id: str, notes: str) -> bool:
        return self._attempt("notes", self.update_notes_or_raise, appointment_id, notes) is not None

    # ==================== Queries ====================

    def get_appointment(self, appointment_id: str) -> Appointment | None:
        return self.store.get_by_id(appointment_id)

    def get_all_appointments(self) -> list[Appointment]:
        return self.store.get_all()

    def get_appointments_by_status(self, status: AppointmentStatus) -> list[Appointment]:
        return [a for a in self.store.get_all() if a.status is status]

    def get_appointments_by_date(self, date: str) -> list[Appointment]:
        return [a for a in self.store.get_all() if a.date == date]

    def get_appointments_in_range(self, start_date: str, end_date: str) -> list[Appointment]:
        return sorted(
            (a for a in self.store.get_all() if start_date <= a.date <= end_date),
            key=lambda a: (a.date, a.time),
        )

    def get_today_appointments(self) -> list[Appointment]:
        return sorted(
            self.get_appointments_by_date(format_date(self._clock().date())),
            key=lambda a: a.time,
        )

    def get_appointment_count(self) -> int:
        return len(self.store.get_all())

    def get_count_by_status(self, status: AppointmentStatus) -> int:
        return len(self.get_appointments_by_status(status))

    def get_status_counts(self) -> dict[AppointmentStatus, int]:
        """Number of appointments per status, every status present."""
        counts = dict.fromkeys(AppointmentStatus, 0)
        for appointment in self.store.get_all():
            counts[appointment.status] += 1
        return counts

    # ==================== Availability ====================

    def get_standard_time_slots(self) -> list[str]:
        """The bookable grid for one day."""
        return list(self._standard_slots)

    def is_slot_bookable(self, doctor_ref: str, date: str, time: str) -> bool:
        """On the grid and not held by a scheduled appointment."""
        if parse_date(date) is None or time not in self._standard_slots:
            return False
        return self.store.is_slot_available(doctor_ref, date, time)

    def get_available_slots(self, doctor_ref: str, date: str) -> list[str]:
        """
        Free grid times for a doctor on a day.

        Times that are not strictly in the future are left out, so on the
        current day only the remaining slots are offered.
        """
        day = parse_date(date)
        if day is None:
            return []
        booked = set(self.store.get_booked_slots(doctor_ref, date))
        now = self._clock()
        today = now.date()
        if day < today:
            return []
        available = [slot for slot in self._standard_slots if slot not in booked]
        if day == today:
            current = format_time(now)
            available = [slot for slot in available if slot > current]
        return available

    # ==================== Revenue ====================

    def get_revenue_summary(self) -> RevenueSummary:
        """
        Aggregate prices over non-cancelled appointments.

        Scheduled appointments count as revenue before they are completed.
        No-show appointments are excluded along with cancelled ones.
        """
        total = Decimal("0")
        paid = Decimal("0")
        for appointment in self.store.get_all():
            if appointment.status not in REVENUE_STATUSES:
                continue
            total += appointment.price
            if appointment.paid:
                paid += appointment.price
        return RevenueSummary(total=total, paid=paid, unpaid=total - paid)

    def get_total_revenue(self) -> Decimal:
        return self.get_revenue_summary().total

    def get_paid_revenue(self) -> Decimal:
        return self.get_revenue_summary().paid

    def get_unpaid_revenue(self) -> Decimal:
        return self.get_revenue_summary().unpaid
