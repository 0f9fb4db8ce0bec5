"""Value types shared by the scheduling components."""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum


class AppointmentStatus(str, Enum):
    SCHEDULED = 'SCHEDULED'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    NO_SHOW = 'NO_SHOW'


_ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    },
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
    AppointmentStatus.NO_SHOW: set(),
}


def can_transition(source: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in _ALLOWED_TRANSITIONS[source]


def is_terminal(status: AppointmentStatus) -> bool:
    return not _ALLOWED_TRANSITIONS[status]


@dataclass(frozen=True)
class TimeSlot:
    """A half-open ``[start, end)`` window."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError('A time slot must end after it starts.')

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: 'TimeSlot') -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class BookingRequest:
    """Candidate appointment submitted for validation.

    Every field except ``notes`` and ``exclude_appointment_id`` is required,
    but the type accepts ``None`` so the booking policy can report which one
    is missing. ``exclude_appointment_id`` names the appointment being
    updated so it is not treated as a conflict with itself.
    """

    counselor_id: int | None
    student_id: int | None
    start_time: datetime | None
    end_time: datetime | None
    notes: str | None = None
    exclude_appointment_id: int | None = None

    @property
    def interval(self) -> TimeSlot:
        return TimeSlot(self.start_time, self.end_time)


@dataclass(frozen=True)
class Appointment:
    counselor_id: int
    student_id: int
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    id: int | None = None

    def __post_init__(self) -> None:
        if self.counselor_id is None or self.counselor_id <= 0:
            raise ValueError('Counselor ID must be a positive number')
        if self.student_id is None or self.student_id <= 0:
            raise ValueError('Student ID must be a positive number')
        if self.start_time is None or self.end_time is None:
            raise ValueError('Start and end times are required')
        if self.end_time <= self.start_time:
            raise ValueError('End time must be after start time')

    @classmethod
    def schedule(cls, request: BookingRequest, now: datetime) -> 'Appointment':
        return cls(
            counselor_id=request.counselor_id,
            student_id=request.student_id,
            start_time=request.start_time,
            end_time=request.end_time,
            status=AppointmentStatus.SCHEDULED,
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )

    @property
    def interval(self) -> TimeSlot:
        return TimeSlot(self.start_time, self.end_time)

    @property
    def is_active(self) -> bool:
        return self.status is not AppointmentStatus.CANCELLED

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def with_status(self, status: AppointmentStatus, now: datetime) -> 'Appointment':
        return replace(self, status=status, updated_at=now)

    def with_times(self, start_time: datetime, end_time: datetime, now: datetime) -> 'Appointment':
        return replace(self, start_time=start_time, end_time=end_time, updated_at=now)

    def with_note(self, note: str, now: datetime) -> 'Appointment':
        notes = f'{self.notes}\n{note}' if self.notes else note
        return replace(self, notes=notes, updated_at=now)
