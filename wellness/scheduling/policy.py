"""Booking rules checked before an appointment is created or moved.

Rules run in a fixed order and the first failure is raised on its own.
The cheap request-only checks come first so malformed input never reaches
the store.
"""

import logging
from datetime import datetime, timedelta

from wellness.core.config import SchedulingSettings
from wellness.scheduling.conflicts import find_conflicts
from wellness.scheduling.errors import Conflict, InvalidInput, NotFound, StoreError, Unavailable
from wellness.scheduling.ports import AppointmentStore, Clock, CounselorDirectory
from wellness.scheduling.types import BookingRequest

logger = logging.getLogger(__name__)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def require_local_times(*moments: datetime | None) -> None:
    """Reject offset-aware datetimes; schedules are kept in naive local time."""
    if any(moment is not None and moment.tzinfo is not None for moment in moments):
        raise InvalidInput('Start and end times must not carry a time zone offset')


def _format_duration(duration: timedelta) -> str:
    minutes = int(duration.total_seconds() // 60)
    if minutes % 60 == 0:
        hours = minutes // 60
        return f'{hours} hour' if hours == 1 else f'{hours} hours'
    return f'{minutes} minutes'


class BookingPolicy:
    def __init__(
        self,
        store: AppointmentStore,
        counselors: CounselorDirectory,
        clock: Clock,
        settings: SchedulingSettings | None = None,
    ):
        self.store = store
        self.counselors = counselors
        self.clock = clock
        self.settings = settings or SchedulingSettings()

    def validate(self, request: BookingRequest) -> None:
        self.check_request(request)
        self.check_against_store(request)

    def check_request(self, request: BookingRequest) -> None:
        """Rules that only look at the request itself."""
        self._require_fields(request)
        self._require_valid_interval(request)
        self._reject_past_start(request)
        self._enforce_duration_bounds(request)

    def check_against_store(self, request: BookingRequest) -> None:
        """Rules that consult the counselor directory and appointment store."""
        self._require_counselor(request)
        self._require_free_interval(request)
        self._enforce_daily_quota(request)

    def _require_fields(self, request: BookingRequest) -> None:
        if request.counselor_id is None:
            raise InvalidInput('Counselor ID is required')
        if request.student_id is None:
            raise InvalidInput('Student ID is required')
        if request.start_time is None:
            raise InvalidInput('Start time is required')
        if request.end_time is None:
            raise InvalidInput('End time is required')
        if request.counselor_id <= 0:
            raise InvalidInput('Counselor ID must be a positive number')
        if request.student_id <= 0:
            raise InvalidInput('Student ID must be a positive number')
        require_local_times(request.start_time, request.end_time)

    def _require_valid_interval(self, request: BookingRequest) -> None:
        if request.end_time <= request.start_time:
            raise InvalidInput('End time must be after start time')

    def _reject_past_start(self, request: BookingRequest) -> None:
        if request.start_time < self.clock.now():
            raise InvalidInput('Start time cannot be in the past')

    def _enforce_duration_bounds(self, request: BookingRequest) -> None:
        duration = request.end_time - request.start_time

        if duration < self.settings.min_duration:
            raise InvalidInput(
                f'Minimum appointment duration is {_format_duration(self.settings.min_duration)}'
            )
        if duration > self.settings.max_duration:
            raise InvalidInput(
                f'Maximum appointment duration is {_format_duration(self.settings.max_duration)}'
            )

    def _require_counselor(self, request: BookingRequest) -> None:
        try:
            exists = self.counselors.exists(request.counselor_id)
        except StoreError as exc:
            raise Unavailable(f'Could not look up counselor {request.counselor_id}', cause=exc) from exc

        if not exists:
            raise NotFound(f'Counselor with ID {request.counselor_id} not found')

    def _require_free_interval(self, request: BookingRequest) -> None:
        try:
            existing = self.store.find_by_counselor_and_date_range(
                request.counselor_id,
                request.start_time,
                request.end_time,
            )
        except StoreError as exc:
            raise Unavailable('Could not load existing appointments', cause=exc) from exc

        clashes = find_conflicts(request, [appointment for appointment in existing if appointment.is_active])
        if clashes:
            logger.debug(
                'Booking for counselor %s at %s rejected; overlaps %s',
                request.counselor_id,
                request.start_time,
                [appointment.id for appointment in clashes],
            )
            raise Conflict('The requested time slot is not available', conflicts=clashes)

    def _enforce_daily_quota(self, request: BookingRequest) -> None:
        day_start = start_of_day(request.start_time)
        day_end = day_start + timedelta(days=1)

        try:
            booked_today = self.store.count_by_student_and_date_range(
                request.student_id,
                day_start,
                day_end,
                exclude_appointment_id=request.exclude_appointment_id,
            )
        except StoreError as exc:
            raise Unavailable('Could not count student appointments', cause=exc) from exc

        if booked_today >= self.settings.max_appointments_per_day:
            raise InvalidInput(
                f'Maximum of {self.settings.max_appointments_per_day} appointments per day allowed'
            )
