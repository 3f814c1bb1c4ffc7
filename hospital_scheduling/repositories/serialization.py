"""Line codec for the appointment flat file.

Record layout, one per line::

    id|patient_ref|doctor_ref|date|time|reason|price|paid|status|notes

``price`` has two decimal places, ``paid`` is ``0``/``1`` and ``status`` is the
integer value of :class:`AppointmentStatus`.
"""

from decimal import Decimal, InvalidOperation

from pydantic import ValidationError

from hospital_scheduling.models.appointments import PRICE_QUANTUM, Appointment, AppointmentStatus

FIELD_COUNT = 10
DEFAULT_DELIMITER = "|"
DEFAULT_COMMENT_MARKER = "#"


class RecordFormatError(ValueError):
    """A stored line could not be turned into an appointment."""


def format_price(price: Decimal) -> str:
    """Render a price with exactly two decimal places."""
    return str(Decimal(price).quantize(PRICE_QUANTUM))


def serialize(appointment: Appointment, delimiter: str = DEFAULT_DELIMITER) -> str:
    """
    Serialize an appointment to a single line (without trailing newline).

    Raises:
        RecordFormatError: If a text field contains the delimiter
    """
    fields = [
        appointment.id,
        appointment.patient_ref,
        appointment.doctor_ref,
        appointment.date,
        appointment.time,
        appointment.reason,
        format_price(appointment.price),
        "1" if appointment.paid else "0",
        str(int(appointment.status)),
        appointment.notes,
    ]
    for value in fields:
        if delimiter in value:
            raise RecordFormatError(
                f"Appointment {appointment.id} has a field containing {delimiter!r}"
            )
    return delimiter.join(fields)


def parse_status(raw: str) -> AppointmentStatus:
    """Accept integer codes and the lowercase legacy names."""
    raw = raw.strip()
    if raw.isdigit():
        try:
            return AppointmentStatus(int(raw))
        except ValueError:
            raise RecordFormatError(f"Unknown status code: {raw}") from None
    try:
        return AppointmentStatus.from_label(raw)
    except ValueError as e:
        raise RecordFormatError(str(e)) from None


def deserialize(line: str, delimiter: str = DEFAULT_DELIMITER) -> Appointment:
    """
    Parse one stored line.

    Args:
        line: Line from the backing file, trailing newline allowed
        delimiter: Field delimiter

    Returns:
        Parsed appointment

    Raises:
        RecordFormatError: If the line has the wrong shape or invalid values
    """
    parts = line.rstrip("\r\n").split(delimiter)
    if len(parts) != FIELD_COUNT:
        raise RecordFormatError(f"Expected {FIELD_COUNT} fields, got {len(parts)}")

    (
        appointment_id,
        patient_ref,
        doctor_ref,
        date,
        time,
        reason,
        raw_price,
        raw_paid,
        raw_status,
        notes,
    ) = parts

    try:
        price = Decimal(raw_price.strip())
    except InvalidOperation:
        raise RecordFormatError(f"Invalid price: {raw_price!r}") from None

    if raw_paid not in ("0", "1"):
        raise RecordFormatError(f"Invalid paid flag: {raw_paid!r}")

    try:
        return Appointment(
            id=appointment_id,
            patient_ref=patient_ref,
            doctor_ref=doctor_ref,
            date=date,
            time=time,
            reason=reason,
            price=price,
            paid=raw_paid == "1",
            status=parse_status(raw_status),
            notes=notes,
        )
    except ValidationError as e:
        raise RecordFormatError(f"Invalid appointment record: {e.errors()[0]['msg']}") from None


def is_skippable(line: str, comment_marker: str = DEFAULT_COMMENT_MARKER) -> bool:
    """Blank lines and comment lines carry no record."""
    stripped = line.strip()
    return not stripped or stripped.startswith(comment_marker)
