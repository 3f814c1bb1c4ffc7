"""Patient and doctor lookups consumed by the scheduling service."""

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)


class PatientLookup(Protocol):
    """Answers whether a patient reference resolves."""

    def exists(self, patient_ref: str) -> bool: ...


class DoctorLookup(Protocol):
    """Answers whether a doctor exists and what they charge."""

    def exists(self, doctor_ref: str) -> bool: ...

    def get_consultation_fee(self, doctor_ref: str) -> Decimal: ...


class PatientDirectory:
    """In-memory set of known patient usernames."""

    def __init__(self, usernames: list[str] | None = None):
        """Initialize with optional usernames."""
        self._usernames: set[str] = set(usernames or [])

    def add(self, username: str) -> None:
        """Register a patient."""
        self._usernames.add(username)

    def remove(self, username: str) -> None:
        """Forget a patient; their appointments are kept."""
        self._usernames.discard(username)

    def exists(self, patient_ref: str) -> bool:
        """Check whether a patient is registered."""
        return patient_ref in self._usernames

    @classmethod
    def from_file(cls, path: str | Path, delimiter: str = "|") -> "PatientDirectory":
        """
        Seed from a pipe-delimited patient file.

        Each record is ``patientID|username|name|...``; the username is the
        reference appointments use.
        """
        directory = cls()
        for fields in _read_records(path, delimiter, min_fields=2):
            directory.add(fields[1])
        return directory


class DoctorDirectory:
    """In-memory map of doctor ids to consultation fees."""

    def __init__(self, fees: dict[str, Decimal] | None = None):
        """Initialize with optional ``{doctor_id: fee}`` mapping."""
        self._fees: dict[str, Decimal] = {}
        for doctor_ref, fee in (fees or {}).items():
            self.add(doctor_ref, fee)

    def add(self, doctor_ref: str, consultation_fee: Decimal | float | str) -> None:
        """Register a doctor or change their fee."""
        fee = Decimal(str(consultation_fee))
        if fee < 0:
            raise ValueError("Consultation fee must be non-negative")
        self._fees[doctor_ref] = fee

    def remove(self, doctor_ref: str) -> None:
        """Forget a doctor; their appointments are kept."""
        self._fees.pop(doctor_ref, None)

    def exists(self, doctor_ref: str) -> bool:
        """Check whether a doctor is registered."""
        return doctor_ref in self._fees

    def get_consultation_fee(self, doctor_ref: str) -> Decimal:
        """Current fee of a doctor, zero if unknown."""
        return self._fees.get(doctor_ref, Decimal("0"))

    @classmethod
    def from_file(cls, path: str | Path, delimiter: str = "|") -> "DoctorDirectory":
        """
        Seed from a pipe-delimited doctor file.

        Each record is ``doctorID|username|name|phone|gender|dob|specialization|
        schedule|fee``.
        """
        directory = cls()
        for fields in _read_records(path, delimiter, min_fields=9):
            try:
                directory.add(fields[0], fields[8].strip())
            except (InvalidOperation, ValueError):
                logger.warning("doctor_record_skipped", path=str(path), doctor_ref=fields[0])
        return directory


def _read_records(path: str | Path, delimiter: str, min_fields: int) -> list[list[str]]:
    records = []
    try:
        with Path(path).open(encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.rstrip("\r\n")
                if not line.strip() or line.startswith("#"):
                    continue
                fields = line.split(delimiter)
                if len(fields) < min_fields:
                    logger.warning(
                        "directory_line_skipped", path=str(path), line_number=line_number
                    )
                    continue
                records.append(fields)
    except FileNotFoundError:
        logger.warning("directory_file_missing", path=str(path))
    return records
