"""File-backed appointment repository."""

import os
import re
import shutil
import tempfile
import threading
from collections.abc import Callable, Iterable
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

from hospital_scheduling.config import Settings
from hospital_scheduling.core.clock import Clock, system_clock
from hospital_scheduling.core.timeutils import format_date
from hospital_scheduling.models.appointments import Appointment, AppointmentStatus
from hospital_scheduling.repositories.serialization import (
    DEFAULT_COMMENT_MARKER,
    DEFAULT_DELIMITER,
    RecordFormatError,
    deserialize,
    is_skippable,
    serialize,
)

logger = structlog.get_logger(__name__)


@runtime_checkable
class AppointmentStore(Protocol):
    """Operations the scheduling service needs from an appointment store."""

    lock: AbstractContextManager
    delimiter: str

    def get_all(self) -> list[Appointment]: ...

    def get_by_id(self, appointment_id: str) -> Appointment | None: ...

    def add(self, appointment: Appointment) -> bool: ...

    def update(self, appointment: Appointment) -> bool: ...

    def remove(self, appointment_id: str) -> bool: ...

    def is_slot_available(
        self,
        doctor_ref: str,
        date: str,
        time: str,
        exclude_id: str | None = None,
    ) -> bool: ...

    def get_booked_slots(self, doctor_ref: str, date: str) -> list[str]: ...

    def get_next_id(self) -> str: ...


class AppointmentRepository:
    """
    Authoritative in-memory set of appointments mirrored to a flat file.

    The file is loaded lazily on first access and rewritten in full after every
    mutation. Mutations are all-or-nothing: if the file cannot be written the
    in-memory change is rolled back and the operation reports failure.

    All access goes through ``lock``, a re-entrant lock that callers may also
    hold to make a check-then-write sequence atomic.
    """

    def __init__(
        self,
        file_path: str | Path,
        *,
        delimiter: str = DEFAULT_DELIMITER,
        comment_marker: str = DEFAULT_COMMENT_MARKER,
        id_prefix: str = "APT",
        id_width: int = 3,
        backup_dir: str | Path | None = None,
        clock: Clock = system_clock,
    ):
        """Initialize repository; nothing is read until first access."""
        self.lock = threading.RLock()
        self._file_path = Path(file_path)
        self.delimiter = delimiter
        self.comment_marker = comment_marker
        self.id_prefix = id_prefix
        self.id_width = id_width
        self.backup_dir = Path(backup_dir) if backup_dir is not None else None
        self._clock = clock
        self._appointments: dict[str, Appointment] = {}
        self._is_loaded = False
        self._id_pattern = re.compile(rf"^{re.escape(id_prefix)}(\d+)$")

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = system_clock) -> "AppointmentRepository":
        """Build a repository from application settings."""
        return cls(
            settings.appointment_file,
            delimiter=settings.field_delimiter,
            comment_marker=settings.comment_marker,
            id_prefix=settings.appointment_id_prefix,
            id_width=settings.appointment_id_width,
            backup_dir=settings.backup_dir,
            clock=clock,
        )

    # ==================== File path ====================

    @property
    def file_path(self) -> Path:
        """Path of the backing file."""
        return self._file_path

    def set_file_path(self, file_path: str | Path) -> None:
        """Point the repository at another file and force a reload."""
        with self.lock:
            self._file_path = Path(file_path)
            self._appointments = {}
            self._is_loaded = False

    # ==================== Persistence ====================

    def load(self) -> bool:
        """
        Load appointments from the backing file.

        Idempotent: once loaded, further calls return immediately until the
        file path changes. A missing file counts as an empty store. Blank and
        comment lines are skipped silently; malformed or non-UTF-8 lines are
        skipped with a warning.

        Returns:
            True if the store is loaded, False if the file could not be read
        """
        with self.lock:
            if self._is_loaded:
                return True

            try:
                with self._file_path.open("rb") as f:
                    lines = f.readlines()
            except FileNotFoundError:
                logger.info("appointment_file_missing", path=str(self._file_path))
                self._appointments = {}
                self._is_loaded = True
                return True
            except OSError as e:
                logger.error(
                    "appointment_file_unreadable", path=str(self._file_path), error=str(e)
                )
                return False

            loaded: dict[str, Appointment] = {}
            skipped = 0
            for line_number, raw in enumerate(lines, start=1):
                try:
                    line = raw.decode("utf-8")
                except UnicodeDecodeError as e:
                    skipped += 1
                    logger.warning(
                        "appointment_line_skipped",
                        path=str(self._file_path),
                        line_number=line_number,
                        reason=f"Line is not valid UTF-8: {e.reason}",
                    )
                    continue
                if is_skippable(line, self.comment_marker):
                    continue
                try:
                    appointment = deserialize(line, self.delimiter)
                except RecordFormatError as e:
                    skipped += 1
                    logger.warning(
                        "appointment_line_skipped",
                        path=str(self._file_path),
                        line_number=line_number,
                        reason=str(e),
                    )
                    continue
                if appointment.id in loaded:
                    skipped += 1
                    logger.warning(
                        "appointment_line_skipped",
                        path=str(self._file_path),
                        line_number=line_number,
                        reason=f"Duplicate appointment id {appointment.id}",
                    )
                    continue
                loaded[appointment.id] = appointment

            self._appointments = loaded
            self._is_loaded = True
            logger.info(
                "appointments_loaded",
                path=str(self._file_path),
                count=len(loaded),
                skipped=skipped,
            )
            return True

    def save(self) -> bool:
        """
        Rewrite the backing file from the in-memory set.

        The new content is written to a temporary file beside the target and
        then moved over it, so a failed write never truncates the old file.
        Nothing is written unless the file was loaded first, so a store that
        failed to read its file can never overwrite it.

        Returns:
            True on success, False if the store is not loaded or the file could not be written
        """
        with self.lock:
            if not self._is_loaded:
                logger.error("appointment_save_refused", path=str(self._file_path))
                return False
            try:
                lines = [serialize(a, self.delimiter) + "\n" for a in self._appointments.values()]
            except RecordFormatError as e:
                logger.error("appointment_save_failed", path=str(self._file_path), error=str(e))
                return False

            tmp_name = None
            try:
                self._file_path.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    mode="w",
                    encoding="utf-8",
                    dir=self._file_path.parent,
                    prefix=f".{self._file_path.name}.",
                    suffix=".tmp",
                    delete=False,
                ) as tmp:
                    tmp_name = tmp.name
                    tmp.writelines(lines)
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.replace(tmp_name, self._file_path)
            except OSError as e:
                logger.error("appointment_save_failed", path=str(self._file_path), error=str(e))
                if tmp_name is not None and os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                return False
            return True

    def create_backup(self) -> Path | None:
        """
        Copy the backing file into the backup directory.

        The copy is named ``<stem>_backup_<YYYYmmdd_HHMMSS><suffix>``.

        Returns:
            Path of the backup, or None if there was nothing to copy
        """
        with self.lock:
            if not self._file_path.exists():
                return None
            backup_dir = self.backup_dir or self._file_path.parent / "backup"
            backup_dir.mkdir(parents=True, exist_ok=True)
            stamp = self._clock().strftime("%Y%m%d_%H%M%S")
            target = backup_dir / f"{self._file_path.stem}_backup_{stamp}{self._file_path.suffix}"
            shutil.copy2(self._file_path, target)
            logger.info("appointment_backup_created", path=str(target))
            return target

    def _mutate(self, change: Callable[[dict[str, Appointment]], None]) -> bool:
        """Apply ``change`` to a copy of the set and keep it only if it persists."""
        previous = self._appointments
        updated = dict(previous)
        change(updated)
        self._appointments = updated
        if not self.save():
            self._appointments = previous
            return False
        return True

    # ==================== CRUD ====================

    def get_all(self) -> list[Appointment]:
        """Return copies of all appointments in insertion order."""
        with self.lock:
            self.load()
            return [a.model_copy() for a in self._appointments.values()]

    def get_by_id(self, appointment_id: str) -> Appointment | None:
        """Return a copy of the appointment, or None if not found."""
        with self.lock:
            self.load()
            appointment = self._appointments.get(appointment_id)
            return appointment.model_copy() if appointment is not None else None

    def add(self, appointment: Appointment) -> bool:
        """Insert a new appointment; fails if the id already exists."""
        with self.lock:
            if not self.load():
                return False
            if appointment.id in self._appointments:
                return False
            stored = appointment.model_copy()
            return self._mutate(lambda items: items.__setitem__(stored.id, stored))

    def update(self, appointment: Appointment) -> bool:
        """Replace an existing appointment; fails if the id is unknown."""
        with self.lock:
            if not self.load():
                return False
            if appointment.id not in self._appointments:
                return False
            stored = appointment.model_copy()
            return self._mutate(lambda items: items.__setitem__(stored.id, stored))

    def remove(self, appointment_id: str) -> bool:
        """Delete an appointment; fails if the id is unknown."""
        with self.lock:
            if not self.load():
                return False
            if appointment_id not in self._appointments:
                return False
            return self._mutate(lambda items: items.pop(appointment_id))

    def clear(self) -> bool:
        """Delete every appointment."""
        with self.lock:
            if not self.load():
                return False
            return self._mutate(lambda items: items.clear())

    def count(self) -> int:
        """Number of stored appointments."""
        with self.lock:
            self.load()
            return len(self._appointments)

    def exists(self, appointment_id: str) -> bool:
        """Check whether an appointment id is present."""
        with self.lock:
            self.load()
            return appointment_id in self._appointments

    # ==================== Filters ====================

    def _select(self, predicate: Callable[[Appointment], bool]) -> list[Appointment]:
        with self.lock:
            self.load()
            return [a.model_copy() for a in self._appointments.values() if predicate(a)]

    @staticmethod
    def _chronological(items: Iterable[Appointment], reverse: bool = False) -> list[Appointment]:
        return sorted(items, key=lambda a: (a.date, a.time), reverse=reverse)

    def get_by_patient(self, patient_ref: str) -> list[Appointment]:
        """All appointments of a patient."""
        return self._select(lambda a: a.patient_ref == patient_ref)

    def get_upcoming_by_patient(self, patient_ref: str) -> list[Appointment]:
        """Scheduled future appointments of a patient, soonest first."""
        now = self._clock()
        return self._chronological(
            self._select(lambda a: a.patient_ref == patient_ref and a.is_upcoming(now))
        )

    def get_history_by_patient(self, patient_ref: str) -> list[Appointment]:
        """Past or terminated appointments of a patient, most recent first."""
        now = self._clock()
        return self._chronological(
            self._select(lambda a: a.patient_ref == patient_ref and not a.is_upcoming(now)),
            reverse=True,
        )

    def get_unpaid_by_patient(self, patient_ref: str) -> list[Appointment]:
        """Unpaid, non-cancelled appointments of a patient."""
        return self._select(
            lambda a: a.patient_ref == patient_ref
            and not a.paid
            and a.status is not AppointmentStatus.CANCELLED
        )

    def get_by_doctor(self, doctor_ref: str) -> list[Appointment]:
        """All appointments of a doctor."""
        return self._select(lambda a: a.doctor_ref == doctor_ref)

    def get_by_doctor_and_date(self, doctor_ref: str, date: str) -> list[Appointment]:
        """A doctor's appointments on one day, in time order."""
        return self._chronological(
            self._select(lambda a: a.doctor_ref == doctor_ref and a.date == date)
        )

    def get_upcoming_by_doctor(self, doctor_ref: str) -> list[Appointment]:
        """Scheduled future appointments of a doctor, soonest first."""
        now = self._clock()
        return self._chronological(
            self._select(lambda a: a.doctor_ref == doctor_ref and a.is_upcoming(now))
        )

    def get_history_by_doctor(self, doctor_ref: str) -> list[Appointment]:
        """Past or terminated appointments of a doctor, most recent first."""
        now = self._clock()
        return self._chronological(
            self._select(lambda a: a.doctor_ref == doctor_ref and not a.is_upcoming(now)),
            reverse=True,
        )

    def get_by_date(self, date: str) -> list[Appointment]:
        """All appointments on one day."""
        return self._select(lambda a: a.date == date)

    def get_by_date_range(self, start_date: str, end_date: str) -> list[Appointment]:
        """Appointments between two dates, both inclusive, in time order."""
        return self._chronological(self._select(lambda a: start_date <= a.date <= end_date))

    def get_today(self) -> list[Appointment]:
        """Today's appointments in time order."""
        today = format_date(self._clock().date())
        return self._chronological(self.get_by_date(today))

    def get_by_status(self, status: AppointmentStatus) -> list[Appointment]:
        """Appointments with the given status."""
        return self._select(lambda a: a.status is status)

    def get_scheduled(self) -> list[Appointment]:
        return self.get_by_status(AppointmentStatus.SCHEDULED)

    def get_completed(self) -> list[Appointment]:
        return self.get_by_status(AppointmentStatus.COMPLETED)

    def get_cancelled(self) -> list[Appointment]:
        return self.get_by_status(AppointmentStatus.CANCELLED)

    # ==================== Slots ====================

    def is_slot_available(
        self,
        doctor_ref: str,
        date: str,
        time: str,
        exclude_id: str | None = None,
    ) -> bool:
        """
        Check whether a doctor's slot is free.

        Only ``SCHEDULED`` appointments occupy a slot. The appointment named by
        ``exclude_id`` is ignored, so an appointment never conflicts with itself.
        """
        with self.lock:
            self.load()
            return not any(
                a.id != exclude_id
                and a.status is AppointmentStatus.SCHEDULED
                and a.doctor_ref == doctor_ref
                and a.date == date
                and a.time == time
                for a in self._appointments.values()
            )

    def get_booked_slots(self, doctor_ref: str, date: str) -> list[str]:
        """Sorted times occupied by scheduled appointments for a doctor and day."""
        with self.lock:
            self.load()
            return sorted(
                {
                    a.time
                    for a in self._appointments.values()
                    if a.status is AppointmentStatus.SCHEDULED
                    and a.doctor_ref == doctor_ref
                    and a.date == date
                }
            )

    # ==================== ID generation ====================

    def get_next_id(self) -> str:
        """
        Allocate the next appointment id.

        Returns one more than the highest numeric suffix among ids of the form
        ``<prefix><digits>``; other ids are ignored. Starts at 1.
        """
        with self.lock:
            self.load()
            highest = 0
            for appointment_id in self._appointments:
                match = self._id_pattern.match(appointment_id)
                if match:
                    highest = max(highest, int(match.group(1)))
            return f"{self.id_prefix}{highest + 1:0{self.id_width}d}"
