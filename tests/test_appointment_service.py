"""Tests for scheduling business rules."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from hospital_scheduling.core.exceptions import (
    BadRequestException,
    ConflictException,
    InvalidStatusTransition,
    NotFoundException,
    ValidationException,
)
from hospital_scheduling.models.appointments import AppointmentStatus
from hospital_scheduling.services.appointment_service import AppointmentService

from conftest import TODAY, TOMORROW


def test_book_appointment(service, repository):
    """Booking creates a scheduled, unpaid appointment priced at the doctor's fee."""
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")

    assert appointment is not None
    assert appointment.id == "APT001"
    assert appointment.status is AppointmentStatus.SCHEDULED
    assert appointment.price == Decimal("150.00")
    assert appointment.paid is False
    assert repository.get_by_id("APT001") == appointment


def test_double_booking_rejected(service):
    """A second booking of the same doctor slot fails."""
    assert service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever") is not None
    assert service.book_appointment("bob", "D1", TOMORROW, "09:00", "Cough") is None

    with pytest.raises(ConflictException):
        service.book_appointment_or_raise("bob", "D1", TOMORROW, "09:00", "Cough")

    # Another doctor is free at the same time
    assert service.book_appointment("bob", "D2", TOMORROW, "09:00", "Cough") is not None


def test_ids_are_sequential(service):
    first = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")
    second = service.book_appointment("bob", "D1", TOMORROW, "09:30", "Cough")

    assert (first.id, second.id) == ("APT001", "APT002")


@pytest.mark.parametrize("time", ["08:15", "07:30", "17:00", "12:45"])
def test_off_grid_time_rejected(service, time):
    """Only standard half-hour slots in working hours are bookable."""
    with pytest.raises(ValidationException):
        service.book_appointment_or_raise("alice", "D1", TOMORROW, time, "Fever")


def test_grid_bounds(service):
    slots = service.get_standard_time_slots()

    assert len(slots) == 18
    assert slots[0] == "08:00"
    assert slots[-1] == "16:30"
    assert service.book_appointment("alice", "D1", TOMORROW, "16:30", "Fever") is not None


@pytest.mark.parametrize(
    "date,time",
    [
        ("2030-13-01", "09:00"),
        ("01-01-2030", "09:00"),
        ("2030-02-30", "09:00"),
        (TOMORROW, "9:00"),
        (TOMORROW, "ab:cd"),
    ],
)
def test_malformed_date_or_time_rejected(service, date, time):
    with pytest.raises(ValidationException):
        service.book_appointment_or_raise("alice", "D1", date, time, "Fever")


@pytest.mark.parametrize(
    "date,time",
    [
        ("2029-12-30", "09:00"),  # yesterday
        (TODAY, "11:30"),  # earlier today
        (TODAY, "12:00"),  # right now
    ],
)
def test_past_slots_rejected(service, date, time):
    """Past dates and non-future times today cannot be booked."""
    assert service.book_appointment("alice", "D1", date, time, "Fever") is None


def test_later_today_accepted(service):
    assert service.book_appointment("alice", "D1", TODAY, "12:30", "Fever") is not None


def test_whitespace_reason_rejected_without_touching_store(patients, doctors, clock):
    """Blank reasons fail before the store is consulted."""
    store = MagicMock()
    service = AppointmentService(store, patients, doctors, clock=clock)

    assert service.book_appointment("alice", "D1", TOMORROW, "09:00", "   ") is None
    assert store.method_calls == []


def test_reason_is_trimmed(service):
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "  Fever  ")

    assert appointment.reason == "Fever"


def test_invalid_lookup_data_rejected_not_raised(repository, patients, clock):
    """Bad data from a lookup collaborator is a rejection, not a crash."""
    doctors = MagicMock()
    doctors.exists.return_value = True
    doctors.get_consultation_fee.return_value = Decimal("-5.00")
    service = AppointmentService(repository, patients, doctors, clock=clock)

    assert service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever") is None
    with pytest.raises(ValidationException):
        service.book_appointment_or_raise("alice", "D1", TOMORROW, "09:00", "Fever")
    assert repository.count() == 0


def test_patient_ref_with_line_break_rejected(repository, doctors, clock):
    patients = MagicMock()
    patients.exists.return_value = True
    service = AppointmentService(repository, patients, doctors, clock=clock)

    assert service.book_appointment("alice\nAPT999", "D1", TOMORROW, "09:00", "Fever") is None
    assert repository.count() == 0


def test_reason_with_delimiter_rejected(service):
    with pytest.raises(ValidationException):
        service.book_appointment_or_raise("alice", "D1", TOMORROW, "09:00", "Fever|cough")


def test_unknown_patient_or_doctor_rejected(service):
    with pytest.raises(NotFoundException):
        service.book_appointment_or_raise("mallory", "D1", TOMORROW, "09:00", "Fever")
    with pytest.raises(NotFoundException):
        service.book_appointment_or_raise("alice", "D9", TOMORROW, "09:00", "Fever")

    assert service.get_appointment_count() == 0


def test_price_fixed_at_booking_time(service, doctors):
    """Later fee changes do not reprice existing appointments."""
    first = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")
    doctors.add("D1", "175.50")
    second = service.book_appointment("bob", "D1", TOMORROW, "09:30", "Cough")

    assert service.get_appointment(first.id).price == Decimal("150.00")
    assert second.price == Decimal("175.50")


def test_appointments_survive_patient_and_doctor_removal(service, patients, doctors):
    """References are historical, not enforced foreign keys."""
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")
    patients.remove("alice")
    doctors.remove("D1")

    assert service.get_appointment(appointment.id) is not None
    assert service.mark_as_completed(appointment.id) is True


# ==================== Editing ====================


def test_edit_moves_slot(service, repository):
    """Rescheduling frees the old slot and occupies the new one."""
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")

    assert service.edit_appointment(appointment.id, "", "10:00") is True

    updated = service.get_appointment(appointment.id)
    assert (updated.date, updated.time) == (TOMORROW, "10:00")
    assert repository.is_slot_available("D1", TOMORROW, "09:00") is True
    assert repository.is_slot_available("D1", TOMORROW, "10:00") is False


def test_edit_date_only(service):
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")

    assert service.reschedule_appointment(appointment.id, "2030-01-05", None) is True
    assert service.get_appointment(appointment.id).date_time == "2030-01-05 09:00"


def test_edit_to_own_slot_always_succeeds(service, clock):
    """Keeping the current date and time is a no-op success, even inside the window."""
    appointment = service.book_appointment("alice", "D1", TODAY, "12:30", "Fever")

    assert service.edit_appointment(appointment.id, TODAY, "12:30") is True
    assert service.edit_appointment(appointment.id) is True
    assert service.edit_appointment(appointment.id, "", "") is True


def test_edit_into_taken_slot_rejected(service):
    first = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")
    service.book_appointment("bob", "D1", TOMORROW, "10:00", "Cough")

    with pytest.raises(ConflictException):
        service.edit_appointment_or_raise(first.id, None, "10:00")
    assert service.get_appointment(first.id).time == "09:00"


def test_edit_into_slot_freed_by_cancellation(service):
    first = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")
    second = service.book_appointment("bob", "D1", TOMORROW, "10:00", "Cough")
    service.cancel_appointment(second.id)

    assert service.edit_appointment(first.id, None, "10:00") is True


def test_edit_within_window_rejected(service):
    """Appointments starting within 60 minutes can no longer move."""
    appointment = service.book_appointment("alice", "D1", TODAY, "12:30", "Fever")

    with pytest.raises(BadRequestException):
        service.edit_appointment_or_raise(appointment.id, None, "15:00")
    assert service.can_edit(appointment.id) is False


@pytest.mark.parametrize(
    "new_date,new_time",
    [(None, "10:15"), ("2030-02-31", None), ("2029-12-30", "09:00"), (TODAY, "11:00")],
)
def test_edit_to_invalid_target_rejected(service, new_date, new_time):
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")

    with pytest.raises(ValidationException):
        service.edit_appointment_or_raise(appointment.id, new_date, new_time)


def test_edit_terminal_or_unknown_rejected(service):
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")
    service.mark_as_completed(appointment.id)

    with pytest.raises(InvalidStatusTransition):
        service.edit_appointment_or_raise(appointment.id, None, "10:00")
    assert service.edit_appointment("APT999", None, "10:00") is False


# ==================== Cancellation ====================


def test_cancel_respects_window(service, repository):
    """Cancellation needs more than an hour of lead time and frees the slot."""
    soon = service.book_appointment("alice", "D1", TODAY, "12:30", "Fever")
    later = service.book_appointment("bob", "D1", TODAY, "14:00", "Cough")

    assert service.can_cancel(soon.id) is False
    assert service.cancel_appointment(soon.id) is False
    assert service.get_appointment(soon.id).status is AppointmentStatus.SCHEDULED

    assert service.can_cancel(later.id) is True
    assert service.cancel_appointment(later.id) is True
    assert service.get_appointment(later.id).status is AppointmentStatus.CANCELLED
    assert repository.is_slot_available("D1", TODAY, "14:00") is True
    assert "14:00" in service.get_available_slots("D1", TODAY)


def test_cancel_window_follows_clock(service, clock):
    appointment = service.book_appointment("alice", "D1", TODAY, "14:00", "Fever")
    clock.advance(minutes=60)

    assert service.cancel_appointment(appointment.id) is False


def test_cancel_twice_rejected(service):
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")

    assert service.cancel_appointment(appointment.id) is True
    with pytest.raises(InvalidStatusTransition):
        service.cancel_appointment_or_raise(appointment.id)
    assert service.cancel_appointment("APT999") is False


# ==================== Status changes ====================


def test_completed_cannot_become_no_show(service):
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")

    assert service.mark_as_completed(appointment.id) is True
    assert service.mark_as_no_show(appointment.id) is False
    assert service.get_appointment(appointment.id).status is AppointmentStatus.COMPLETED


def test_no_show_cannot_become_completed(service):
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")

    assert service.mark_as_no_show(appointment.id) is True
    with pytest.raises(InvalidStatusTransition):
        service.mark_as_completed_or_raise(appointment.id)
    assert service.get_appointment(appointment.id).status is AppointmentStatus.NO_SHOW


def test_completed_slot_can_be_rebooked(service):
    """Terminal appointments no longer take part in conflict checks."""
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")
    service.mark_as_completed(appointment.id)

    assert service.book_appointment("bob", "D1", TOMORROW, "09:00", "Cough") is not None


def test_mark_as_paid_any_status(service):
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")
    service.cancel_appointment(appointment.id)

    assert service.mark_as_paid(appointment.id) is True
    assert service.get_appointment(appointment.id).paid is True
    assert service.mark_as_paid("APT999") is False


def test_update_notes(service):
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")
    service.mark_as_completed(appointment.id)

    assert service.update_notes(appointment.id, "  Prescribed rest  ") is True
    assert service.get_appointment(appointment.id).notes == "Prescribed rest"
    assert service.update_notes(appointment.id, "bad|notes") is False
    assert service.update_notes(appointment.id, "two\nlines") is False
    assert service.get_appointment(appointment.id).notes == "Prescribed rest"


def test_failed_persist_reports_failure(service, repository, monkeypatch):
    """A write failure surfaces as a failed operation and leaves state unchanged."""
    appointment = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")
    monkeypatch.setattr(repository, "save", lambda: False)

    assert service.book_appointment("bob", "D1", TOMORROW, "10:00", "Cough") is None
    assert service.cancel_appointment(appointment.id) is False
    assert service.get_appointment_count() == 1
    assert service.get_appointment(appointment.id).status is AppointmentStatus.SCHEDULED


# ==================== Availability ====================


def test_available_slots(service):
    """Free slots are the grid minus booked times."""
    service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")
    service.book_appointment("bob", "D1", TOMORROW, "16:30", "Cough")
    service.book_appointment("carol", "D2", TOMORROW, "10:00", "Rash")

    slots = service.get_available_slots("D1", TOMORROW)

    assert len(slots) == 16
    assert "09:00" not in slots
    assert "16:30" not in slots
    assert "10:00" in slots
    assert slots == sorted(slots)


def test_available_slots_today_and_past(service):
    """Today only later slots are offered; past or invalid days offer none."""
    today_slots = service.get_available_slots("D1", TODAY)

    assert today_slots[0] == "12:30"
    assert len(today_slots) == 9
    assert service.get_available_slots("D1", "2029-12-30") == []
    assert service.get_available_slots("D1", "not-a-date") == []


def test_is_slot_bookable(service):
    service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")

    assert service.is_slot_bookable("D1", TOMORROW, "09:00") is False
    assert service.is_slot_bookable("D1", TOMORROW, "09:30") is True
    assert service.is_slot_bookable("D1", TOMORROW, "09:15") is False
    assert service.is_slot_bookable("D1", "2030/01/01", "09:30") is False


def test_custom_working_hours(repository, patients, doctors, clock):
    service = AppointmentService(
        repository, patients, doctors, slot_start_hour=9, slot_end_hour=12, clock=clock
    )

    assert service.get_standard_time_slots() == [
        "09:00", "09:30", "10:00", "10:30", "11:00", "11:30",
    ]
    assert service.book_appointment("alice", "D1", TOMORROW, "08:00", "Fever") is None


# ==================== Queries and revenue ====================


def test_queries_and_counts(service):
    a = service.book_appointment("alice", "D1", TODAY, "14:00", "Fever")
    b = service.book_appointment("bob", "D1", TOMORROW, "09:00", "Cough")
    c = service.book_appointment("carol", "D2", "2030-01-03", "09:00", "Rash")
    service.cancel_appointment(c.id)

    assert [x.id for x in service.get_today_appointments()] == [a.id]
    assert [x.id for x in service.get_appointments_by_date(TOMORROW)] == [b.id]
    assert [x.id for x in service.get_appointments_in_range(TODAY, TOMORROW)] == [a.id, b.id]
    assert service.get_count_by_status(AppointmentStatus.SCHEDULED) == 2
    assert service.get_count_by_status(AppointmentStatus.CANCELLED) == 1
    assert service.get_status_counts() == {
        AppointmentStatus.SCHEDULED: 2,
        AppointmentStatus.COMPLETED: 0,
        AppointmentStatus.CANCELLED: 1,
        AppointmentStatus.NO_SHOW: 0,
    }
    assert service.get_appointment_count() == 3
    assert len(service.get_all_appointments()) == 3


def test_revenue(service):
    """Scheduled and completed count; cancelled and no-show do not."""
    scheduled = service.book_appointment("alice", "D1", TOMORROW, "09:00", "Fever")
    completed = service.book_appointment("bob", "D2", TOMORROW, "09:00", "Cough")
    cancelled = service.book_appointment("carol", "D1", TOMORROW, "10:00", "Rash")
    no_show = service.book_appointment("alice", "D2", TOMORROW, "11:00", "Checkup")

    service.mark_as_completed(completed.id)
    service.mark_as_paid(completed.id)
    service.cancel_appointment(cancelled.id)
    service.mark_as_paid(cancelled.id)
    service.mark_as_no_show(no_show.id)
    assert scheduled is not None

    summary = service.get_revenue_summary()

    assert summary.total == Decimal("350.00")
    assert summary.paid == Decimal("200.00")
    assert summary.unpaid == Decimal("150.00")
    assert service.get_total_revenue() == service.get_paid_revenue() + service.get_unpaid_revenue()


def test_revenue_empty(service):
    summary = service.get_revenue_summary()

    assert summary.total == summary.paid == summary.unpaid == Decimal("0")
