"""Entry point for booking, cancelling, completing and querying appointments."""

import csv
import io
import logging
from contextlib import ExitStack, contextmanager
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Iterable

from wellness.core.config import SchedulingSettings
from wellness.scheduling.availability import WorkingHours, free_slots_for
from wellness.scheduling.conflicts import find_conflicts
from wellness.scheduling.errors import (
    Conflict,
    InvalidInput,
    InvalidState,
    NotFound,
    StoreConflictError,
    StoreError,
    Unavailable,
)
from wellness.scheduling.policy import BookingPolicy, require_local_times
from wellness.scheduling.ports import AppointmentStore, Clock, CounselorDirectory, SystemClock
from wellness.scheduling.types import (
    Appointment,
    AppointmentStatus,
    BookingRequest,
    TimeSlot,
    can_transition,
)

logger = logging.getLogger(__name__)

CSV_HEADER = ['ID', 'Student ID', 'Counselor ID', 'Start Time', 'End Time', 'Status', 'Notes']


class SchedulingService:
    def __init__(
        self,
        store: AppointmentStore,
        counselors: CounselorDirectory,
        clock: Clock | None = None,
        settings: SchedulingSettings | None = None,
    ):
        self.store = store
        self.counselors = counselors
        self.clock = clock or SystemClock()
        self.settings = settings or SchedulingSettings()
        self.policy = BookingPolicy(store, counselors, self.clock, self.settings)
        self.working_hours = WorkingHours(
            self.settings.workday_start,
            self.settings.workday_end,
            self.settings.slot_duration,
        )

    def book(self, request: BookingRequest) -> Appointment:
        self.policy.check_request(request)

        with self._locked(request.counselor_id):
            self.policy.check_against_store(request)
            appointment = self._persist(Appointment.schedule(request, self.clock.now()))

        logger.info(
            'Booked appointment %s for student %s with counselor %s at %s',
            appointment.id,
            appointment.student_id,
            appointment.counselor_id,
            appointment.start_time,
        )
        return appointment

    def reschedule(
        self,
        appointment_id: int,
        start_time: datetime,
        end_time: datetime,
        notes: str | None = None,
    ) -> Appointment:
        current = self._require_reschedulable(appointment_id)

        request = BookingRequest(
            counselor_id=current.counselor_id,
            student_id=current.student_id,
            start_time=start_time,
            end_time=end_time,
            notes=notes if notes is not None else current.notes,
            exclude_appointment_id=current.id,
        )
        self.policy.check_request(request)

        with self._locked(current.counselor_id):
            # Reload under the lock so a concurrent cancel is not overwritten.
            current = self._require_reschedulable(appointment_id)
            self.policy.check_against_store(request)
            moved = current.with_times(start_time, end_time, self.clock.now())
            if notes is not None:
                moved = replace(moved, notes=notes)
            appointment = self._persist(moved)

        logger.info('Rescheduled appointment %s to %s - %s', appointment.id, start_time, end_time)
        return appointment

    def cancel(self, appointment_id: int, reason: str = '') -> Appointment:
        counselor_id = self.get_appointment(appointment_id).counselor_id

        with self._locked(counselor_id):
            appointment = self.get_appointment(appointment_id)

            if appointment.status is AppointmentStatus.COMPLETED:
                raise InvalidState('Cannot cancel a completed appointment')
            if appointment.status is AppointmentStatus.CANCELLED:
                raise InvalidState('Appointment is already cancelled')
            if not can_transition(appointment.status, AppointmentStatus.CANCELLED):
                raise InvalidState(f'Cannot cancel an appointment marked {appointment.status.value}')

            now = self.clock.now()
            cancelled = appointment.with_status(AppointmentStatus.CANCELLED, now)
            if reason and reason.strip():
                cancelled = cancelled.with_note(f'Cancellation reason: {reason.strip()}', now)

            saved = self._persist(cancelled)

        logger.info('Cancelled appointment %s', saved.id)
        return saved

    def complete(self, appointment_id: int) -> Appointment:
        counselor_id = self.get_appointment(appointment_id).counselor_id

        with self._locked(counselor_id):
            appointment = self.get_appointment(appointment_id)

            if appointment.status is AppointmentStatus.CANCELLED:
                raise InvalidState('Cannot complete a cancelled appointment')
            if appointment.status is AppointmentStatus.COMPLETED:
                raise InvalidState('Appointment is already completed')
            if not can_transition(appointment.status, AppointmentStatus.COMPLETED):
                raise InvalidState(f'Cannot complete an appointment marked {appointment.status.value}')

            saved = self._persist(appointment.with_status(AppointmentStatus.COMPLETED, self.clock.now()))

        logger.info('Completed appointment %s', saved.id)
        return saved

    def find_available_slots(self, counselor_id: int, day: date) -> list[TimeSlot]:
        day_start = datetime.combine(day, datetime.min.time())
        day_end = day_start + timedelta(days=1)

        try:
            booked = self.store.find_by_counselor_and_date_range(counselor_id, day_start, day_end)
        except StoreError as exc:
            logger.exception('Could not load appointments for counselor %s on %s', counselor_id, day)
            if self.settings.availability_fail_open:
                return []
            raise Unavailable('Could not load appointments', cause=exc) from exc

        return free_slots_for(day, self.working_hours, booked)

    def has_conflict(
        self,
        counselor_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_id: int | None = None,
    ) -> bool:
        if counselor_id is None or start_time is None or end_time is None:
            raise InvalidInput('Counselor ID, start time, and end time are required')
        require_local_times(start_time, end_time)
        if end_time <= start_time:
            raise InvalidInput('End time must be after start time')

        try:
            existing = self.store.find_by_counselor_and_date_range(counselor_id, start_time, end_time)
        except StoreError as exc:
            logger.exception('Conflict check failed for counselor %s', counselor_id)
            raise Unavailable('Could not check for scheduling conflicts', cause=exc) from exc

        candidate = BookingRequest(
            counselor_id=counselor_id,
            student_id=None,
            start_time=start_time,
            end_time=end_time,
            exclude_appointment_id=exclude_id,
        )
        return bool(find_conflicts(candidate, [appointment for appointment in existing if appointment.is_active]))

    def get_appointment(self, appointment_id: int) -> Appointment:
        if appointment_id is None:
            raise InvalidInput('Appointment ID cannot be null')

        try:
            appointment = self.store.find_by_id(appointment_id)
        except StoreError as exc:
            raise Unavailable(f'Could not load appointment {appointment_id}', cause=exc) from exc

        if appointment is None:
            raise NotFound(f'Appointment with ID {appointment_id} not found')
        return appointment

    def appointments_for_student(self, student_id: int) -> list[Appointment]:
        if student_id is None:
            raise InvalidInput('Student ID cannot be null')
        return self._query(self.store.find_by_student, student_id)

    def appointments_for_counselor(self, counselor_id: int) -> list[Appointment]:
        if counselor_id is None:
            raise InvalidInput('Counselor ID cannot be null')
        return self._query(self.store.find_by_counselor, counselor_id)

    def appointments_between(
        self,
        start: datetime,
        end: datetime,
        status: AppointmentStatus | None = None,
        counselor_id: int | None = None,
    ) -> list[Appointment]:
        if start is None or end is None:
            raise InvalidInput('Start and end times cannot be null')
        require_local_times(start, end)
        if end < start:
            raise InvalidInput('End time must be after start time')
        return self._query(self.store.find_between, start, end, status=status, counselor_id=counselor_id)

    def count_student_appointments(self, student_id: int, start: datetime, end: datetime) -> int:
        if student_id is None or start is None or end is None:
            raise InvalidInput('Student ID, start time, and end time are required')
        require_local_times(start, end)
        if end < start:
            raise InvalidInput('End time must be after start time')
        return self._query(self.store.count_by_student_and_date_range, student_id, start, end)

    def student_day_count(self, student_id: int, day: date) -> int:
        day_start = datetime.combine(day, datetime.min.time())
        return self.count_student_appointments(student_id, day_start, day_start + timedelta(days=1))

    def export_csv(self, appointments: Iterable[Appointment]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator='\n')
        writer.writerow(CSV_HEADER)
        for appointment in appointments:
            writer.writerow([
                appointment.id,
                appointment.student_id,
                appointment.counselor_id,
                appointment.start_time.isoformat(),
                appointment.end_time.isoformat(),
                appointment.status.value,
                appointment.notes or '',
            ])
        return buffer.getvalue()

    def _require_reschedulable(self, appointment_id: int) -> Appointment:
        appointment = self.get_appointment(appointment_id)
        if appointment.is_terminal:
            raise InvalidState(f'Cannot reschedule an appointment that is {appointment.status.value.lower()}')
        return appointment

    @contextmanager
    def _locked(self, counselor_id: int):
        with ExitStack() as stack:
            try:
                stack.enter_context(self.store.counselor_lock(counselor_id))
            except StoreError as exc:
                logger.warning('Could not lock schedule for counselor %s: %s', counselor_id, exc)
                raise Unavailable(f'Could not lock schedule for counselor {counselor_id}', cause=exc) from exc
            yield

    def _persist(self, appointment: Appointment) -> Appointment:
        try:
            return self.store.save(appointment)
        except StoreConflictError as exc:
            logger.info('Store rejected overlapping booking for counselor %s', appointment.counselor_id)
            raise Conflict(
                'The requested time slot is not available',
                conflicts=self._clashes_with(appointment),
            ) from exc
        except StoreError as exc:
            logger.exception('Failed to save appointment %s', appointment.id)
            raise Unavailable('Could not save appointment', cause=exc) from exc

    def _clashes_with(self, appointment: Appointment) -> list[Appointment]:
        try:
            existing = self.store.find_by_counselor_and_date_range(
                appointment.counselor_id,
                appointment.start_time,
                appointment.end_time,
            )
        except StoreError:
            logger.warning('Could not load appointments clashing with a rejected write', exc_info=True)
            return []

        candidate = BookingRequest(
            counselor_id=appointment.counselor_id,
            student_id=appointment.student_id,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            exclude_appointment_id=appointment.id,
        )
        return find_conflicts(candidate, [other for other in existing if other.is_active])

    def _query(self, finder, *args, **kwargs):
        try:
            return finder(*args, **kwargs)
        except StoreError as exc:
            logger.exception('Appointment query %s failed', finder.__name__)
            raise Unavailable('Could not load appointments', cause=exc) from exc
