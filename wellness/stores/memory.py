"""Dictionary-backed store used by tests and local experiments."""

from dataclasses import replace
from datetime import datetime
from threading import Lock
from typing import Dict, Iterable, List, Optional

from wellness.scheduling.types import Appointment, AppointmentStatus
from wellness.stores.locks import CounselorLockRegistry


class InMemoryAppointmentStore:
    def __init__(self, locks: CounselorLockRegistry | None = None) -> None:
        self.locks = locks or CounselorLockRegistry()
        self._appointments: Dict[int, Appointment] = {}
        self._next_id = 1
        self._guard = Lock()

    def save(self, appointment: Appointment) -> Appointment:
        with self._guard:
            if appointment.id is None:
                appointment = replace(appointment, id=self._next_id)
                self._next_id += 1
            self._appointments[appointment.id] = appointment
            return appointment

    def find_by_id(self, appointment_id: int) -> Optional[Appointment]:
        return self._appointments.get(appointment_id)

    def find_by_counselor_and_date_range(self, counselor_id: int, start: datetime, end: datetime) -> List[Appointment]:
        return self._sorted(
            a for a in self._snapshot()
            if a.counselor_id == counselor_id and a.start_time < end and a.end_time > start
        )

    def count_by_student_and_date_range(
        self,
        student_id: int,
        start: datetime,
        end: datetime,
        exclude_appointment_id: Optional[int] = None,
    ) -> int:
        return sum(
            1 for a in self._snapshot()
            if a.student_id == student_id
            and a.is_active
            and start <= a.start_time < end
            and (exclude_appointment_id is None or a.id != exclude_appointment_id)
        )

    def find_by_student(self, student_id: int) -> List[Appointment]:
        return self._sorted(a for a in self._snapshot() if a.student_id == student_id)

    def find_by_counselor(self, counselor_id: int) -> List[Appointment]:
        return self._sorted(a for a in self._snapshot() if a.counselor_id == counselor_id)

    def find_between(
        self,
        start: datetime,
        end: datetime,
        status: Optional[AppointmentStatus] = None,
        counselor_id: Optional[int] = None,
    ) -> List[Appointment]:
        return self._sorted(
            a for a in self._snapshot()
            if start <= a.start_time <= end
            and (status is None or a.status is status)
            and (counselor_id is None or a.counselor_id == counselor_id)
        )

    def counselor_lock(self, counselor_id: int):
        return self.locks.hold(counselor_id)

    def _snapshot(self) -> List[Appointment]:
        with self._guard:
            return list(self._appointments.values())

    @staticmethod
    def _sorted(appointments: Iterable[Appointment]) -> List[Appointment]:
        return sorted(appointments, key=lambda a: (a.start_time, a.id))


class InMemoryCounselorDirectory:
    def __init__(self, counselor_ids: Iterable[int] = ()) -> None:
        self._ids = set(counselor_ids)

    def add(self, counselor_id: int) -> None:
        self._ids.add(counselor_id)

    def exists(self, counselor_id: int) -> bool:
        return counselor_id in self._ids
