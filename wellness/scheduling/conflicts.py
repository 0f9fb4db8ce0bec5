"""Overlap detection between appointments of the same counselor.

Intervals are half-open: an appointment ending at 10:30 and another starting
at 10:30 do not conflict.
"""

from typing import Iterable

from wellness.scheduling.types import Appointment, BookingRequest, TimeSlot


def conflicts(a: TimeSlot, b: TimeSlot) -> bool:
    return a.start < b.end and b.start < a.end


def find_conflicts(candidate: BookingRequest, existing: Iterable[Appointment]) -> list[Appointment]:
    """Return the appointments in ``existing`` that clash with ``candidate``.

    An appointment clashes when it belongs to the same counselor, is not the
    appointment named by ``candidate.exclude_appointment_id`` and its
    interval overlaps the candidate's. Input order is preserved.
    """
    candidate_slot = candidate.interval

    return [
        appointment
        for appointment in existing
        if appointment.counselor_id == candidate.counselor_id
        and (
            candidate.exclude_appointment_id is None
            or appointment.id != candidate.exclude_appointment_id
        )
        and conflicts(candidate_slot, appointment.interval)
    ]
