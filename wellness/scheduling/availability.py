"""Free slot computation for a counselor's working day."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable

from wellness.scheduling.conflicts import conflicts
from wellness.scheduling.types import Appointment, TimeSlot

OPEN_TIME = time(9, 0)
CLOSE_TIME = time(17, 0)
DEFAULT_SLOT_DURATION = timedelta(minutes=30)


@dataclass(frozen=True)
class WorkingHours:
    start: time = OPEN_TIME
    end: time = CLOSE_TIME
    slot_duration: timedelta = DEFAULT_SLOT_DURATION

    def __post_init__(self) -> None:
        if self.slot_duration <= timedelta(0):
            raise ValueError('Slot duration must be positive.')
        if self.end <= self.start:
            raise ValueError('Working hours must end after they start.')


def generate_slots(day: date, hours: WorkingHours) -> list[TimeSlot]:
    day_open = datetime.combine(day, hours.start)
    day_close = datetime.combine(day, hours.end)

    slots: list[TimeSlot] = []
    current = day_open
    while current < day_close:
        slot_end = current + hours.slot_duration
        if slot_end > day_close:
            break
        slots.append(TimeSlot(current, slot_end))
        current = slot_end

    return slots


def free_slots(
    day: date,
    work_start: time,
    work_end: time,
    slot_duration: timedelta,
    booked: Iterable[Appointment],
) -> list[TimeSlot]:
    """Return the working-hour slots of ``day`` not taken by ``booked``.

    Cancelled appointments never block a slot. The result is a new list in
    ascending order; the inputs are left untouched.
    """
    hours = WorkingHours(work_start, work_end, slot_duration)
    blocking = [appointment.interval for appointment in booked if appointment.is_active]

    return [
        slot
        for slot in generate_slots(day, hours)
        if not any(conflicts(slot, taken) for taken in blocking)
    ]


def free_slots_for(day: date, hours: WorkingHours, booked: Iterable[Appointment]) -> list[TimeSlot]:
    return free_slots(day, hours.start, hours.end, hours.slot_duration, booked)
