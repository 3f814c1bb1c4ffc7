"""Appointment entity and its status state machine."""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hospital_scheduling.core.exceptions import InvalidStatusTransition
from hospital_scheduling.core.timeutils import combine, is_valid_date, is_valid_time

DEFAULT_CANCEL_WINDOW_MINUTES = 60
PRICE_QUANTUM = Decimal("0.01")


class AppointmentStatus(IntEnum):
    """
    Appointment status enumeration.

    The integer values are the on-disk status codes and must never change.
    """

    SCHEDULED = 0
    COMPLETED = 1
    CANCELLED = 2
    NO_SHOW = 3

    @property
    def label(self) -> str:
        """Lowercase name used in logs and API payloads."""
        return self.name.lower()

    @property
    def is_terminal(self) -> bool:
        """Terminal statuses admit no further transition."""
        return self is not AppointmentStatus.SCHEDULED

    @classmethod
    def from_label(cls, label: str) -> "AppointmentStatus":
        """Resolve a lowercase label such as ``no_show``."""
        try:
            return cls[label.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown appointment status: {label!r}") from None


class Appointment(BaseModel):
    """One scheduled consultation between a patient and a doctor."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(..., min_length=1)
    patient_ref: str = Field(..., min_length=1)
    doctor_ref: str = Field(..., min_length=1)
    date: str
    time: str
    reason: str
    price: Decimal = Field(default=Decimal("0.00"), ge=0)
    paid: bool = False
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: str = ""

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        """Validate YYYY-MM-DD format."""
        if not is_valid_date(v):
            raise ValueError("Date must be a valid YYYY-MM-DD calendar date")
        return v

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Validate HH:MM format."""
        if not is_valid_time(v):
            raise ValueError("Time must be a valid HH:MM 24-hour time")
        return v

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: Decimal) -> Decimal:
        """Prices are held in cents, matching what is stored on disk."""
        return v.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        """Trim reason and reject blank values."""
        v = v.strip()
        if not v:
            raise ValueError("Reason must not be empty")
        return v

    @field_validator("id", "patient_ref", "doctor_ref", "reason", "notes")
    @classmethod
    def validate_single_line(cls, v: str) -> str:
        """Records are newline-delimited on disk."""
        if "\n" in v or "\r" in v:
            raise ValueError("Value must not contain line breaks")
        return v

    @property
    def scheduled_at(self) -> datetime:
        """Date and time combined."""
        return combine(self.date, self.time)  # type: ignore[return-value]

    @property
    def date_time(self) -> str:
        """Date and time as ``YYYY-MM-DD HH:MM``."""
        return f"{self.date} {self.time}"

    # Status transitions

    def _transition(self, target: AppointmentStatus) -> None:
        if self.status.is_terminal:
            raise InvalidStatusTransition(
                f"Appointment {self.id} is already {self.status.label}; "
                f"cannot mark as {target.label}"
            )
        self.status = target

    def mark_as_completed(self) -> None:
        """Mark appointment as completed."""
        self._transition(AppointmentStatus.COMPLETED)

    def mark_as_cancelled(self) -> None:
        """Mark appointment as cancelled."""
        self._transition(AppointmentStatus.CANCELLED)

    def mark_as_no_show(self) -> None:
        """Mark patient as no-show."""
        self._transition(AppointmentStatus.NO_SHOW)

    def mark_as_paid(self) -> None:
        """Record payment; allowed in any status."""
        self.paid = True

    def reschedule(self, date: str, time: str) -> None:
        """Move a scheduled appointment to another date and time."""
        if self.status.is_terminal:
            raise InvalidStatusTransition(
                f"Appointment {self.id} is {self.status.label} and cannot be rescheduled"
            )
        # Validate both before assigning either
        self.model_validate({**self.model_dump(), "date": date, "time": time})
        self.date = date
        self.time = time

    # Time-window predicates

    def is_upcoming(self, now: datetime) -> bool:
        """Scheduled and strictly after ``now``."""
        return self.status is AppointmentStatus.SCHEDULED and self.scheduled_at > now

    def can_cancel(
        self,
        now: datetime,
        window_minutes: int = DEFAULT_CANCEL_WINDOW_MINUTES,
    ) -> bool:
        """Scheduled and more than ``window_minutes`` away from ``now``."""
        return self.status is AppointmentStatus.SCHEDULED and (
            self.scheduled_at - now > timedelta(minutes=window_minutes)
        )

    def can_edit(
        self,
        now: datetime,
        window_minutes: int = DEFAULT_CANCEL_WINDOW_MINUTES,
    ) -> bool:
        """Same time window as cancellation."""
        return self.can_cancel(now, window_minutes)
