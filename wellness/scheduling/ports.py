from contextlib import AbstractContextManager
from datetime import datetime
from typing import List, Optional, Protocol

from wellness.scheduling.types import Appointment, AppointmentStatus


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now()


class FixedClock:
    """Clock frozen at a given instant; ``advance`` moves it forward."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance(self, delta) -> None:
        self.instant = self.instant + delta


class AppointmentStore(Protocol):
    def save(self, appointment: Appointment) -> Appointment:
        ...

    def find_by_id(self, appointment_id: int) -> Optional[Appointment]:
        ...

    def find_by_counselor_and_date_range(self, counselor_id: int, start: datetime, end: datetime) -> List[Appointment]:
        ...

    def count_by_student_and_date_range(
        self,
        student_id: int,
        start: datetime,
        end: datetime,
        exclude_appointment_id: Optional[int] = None,
    ) -> int:
        ...

    def find_by_student(self, student_id: int) -> List[Appointment]:
        ...

    def find_by_counselor(self, counselor_id: int) -> List[Appointment]:
        ...

    def find_between(
        self,
        start: datetime,
        end: datetime,
        status: Optional[AppointmentStatus] = None,
        counselor_id: Optional[int] = None,
    ) -> List[Appointment]:
        ...

    def counselor_lock(self, counselor_id: int) -> AbstractContextManager:
        ...


class CounselorDirectory(Protocol):
    def exists(self, counselor_id: int) -> bool:
        ...
