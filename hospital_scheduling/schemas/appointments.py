"""Appointment schemas for request/response validation."""

from decimal import Decimal

from pydantic import BaseModel, Field, field_serializer

from hospital_scheduling.models.appointments import Appointment


class AppointmentCreate(BaseModel):
    """Schema for booking a new appointment."""

    patient_ref: str = Field(..., min_length=1, max_length=100)
    doctor_ref: str = Field(..., min_length=1, max_length=100)
    date: str = Field(..., description="Appointment date (YYYY-MM-DD)")
    time: str = Field(..., description="Appointment time (HH:MM) on the standard grid")
    reason: str = Field(..., max_length=500)


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment; omitted fields keep their value."""

    date: str | None = None
    time: str | None = None


class AppointmentNotesUpdate(BaseModel):
    """Schema for replacing appointment notes."""

    notes: str = Field(default="", max_length=1000)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: str
    patient_ref: str
    doctor_ref: str
    date: str
    time: str
    reason: str
    price: Decimal
    paid: bool
    status: str
    notes: str

    @field_serializer("price")
    def serialize_price(self, price: Decimal) -> str:
        """Render money with two decimal places."""
        return f"{price:.2f}"

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "AppointmentResponse":
        """Build a response from the domain entity."""
        return cls(
            **appointment.model_dump(exclude={"status"}),
            status=appointment.status.label,
        )


class AppointmentListResponse(BaseModel):
    """Schema for appointment list response."""

    total: int
    items: list[AppointmentResponse]


class AvailableSlotsResponse(BaseModel):
    """Free slots for one doctor on one day."""

    doctor_ref: str
    date: str
    slots: list[str]


class RevenueSummary(BaseModel):
    """
    Revenue over non-cancelled appointments.

    ``total`` always equals ``paid + unpaid``.
    """

    total: Decimal = Decimal("0")
    paid: Decimal = Decimal("0")
    unpaid: Decimal = Decimal("0")

    @field_serializer("total", "paid", "unpaid")
    def serialize_money(self, value: Decimal) -> str:
        """Render money with two decimal places."""
        return f"{value:.2f}"


class StatusCountsResponse(BaseModel):
    """Number of appointments per status."""

    total: int
    counts: dict[str, int]
