from datetime import datetime, timedelta, timezone

import pytest

from wellness.core.config import SchedulingSettings
from wellness.scheduling.errors import Conflict, InvalidInput, NotFound, StoreError, Unavailable
from wellness.scheduling.policy import BookingPolicy, start_of_day
from wellness.scheduling.ports import FixedClock
from wellness.scheduling.types import Appointment, AppointmentStatus, BookingRequest
from wellness.stores.memory import InMemoryAppointmentStore, InMemoryCounselorDirectory

NOW = datetime(2026, 1, 5, 8, 0)
COUNSELOR_ID = 3
STUDENT_ID = 42


class _ExplodingStore:
    """Store that fails the test if the policy touches it."""

    def __getattr__(self, name):
        raise AssertionError(f'store.{name} should not be called')


class _BrokenDirectory:
    def exists(self, counselor_id: int) -> bool:
        raise StoreError('directory offline')


def _request(start: datetime, end: datetime, **overrides) -> BookingRequest:
    values = {
        'counselor_id': COUNSELOR_ID,
        'student_id': STUDENT_ID,
        'start_time': start,
        'end_time': end,
    }
    values.update(overrides)
    return BookingRequest(**values)


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 1, 5, hour, minute)


@pytest.fixture
def store() -> InMemoryAppointmentStore:
    return InMemoryAppointmentStore()


@pytest.fixture
def policy(store: InMemoryAppointmentStore) -> BookingPolicy:
    return BookingPolicy(store, InMemoryCounselorDirectory([COUNSELOR_ID]), FixedClock(NOW))


def _existing(store: InMemoryAppointmentStore, start: datetime, end: datetime, **overrides) -> Appointment:
    values = {
        'counselor_id': COUNSELOR_ID,
        'student_id': 99,
        'start_time': start,
        'end_time': end,
        'created_at': NOW,
        'updated_at': NOW,
    }
    values.update(overrides)
    return store.save(Appointment(**values))


@pytest.mark.parametrize(
    ('field', 'error_detail'),
    [
        ('counselor_id', 'Counselor ID is required'),
        ('student_id', 'Student ID is required'),
        ('start_time', 'Start time is required'),
        ('end_time', 'End time is required'),
    ],
)
def test_missing_required_field_is_reported(policy: BookingPolicy, field: str, error_detail: str) -> None:
    request = _request(_at(10), _at(10, 30), **{field: None})

    with pytest.raises(InvalidInput) as exception_info:
        policy.validate(request)

    assert exception_info.value.message == error_detail


def test_non_positive_ids_are_rejected(policy: BookingPolicy) -> None:
    with pytest.raises(InvalidInput) as exception_info:
        policy.validate(_request(_at(10), _at(10, 30), student_id=0))

    assert exception_info.value.message == 'Student ID must be a positive number'


def test_end_before_start_is_rejected(policy: BookingPolicy) -> None:
    with pytest.raises(InvalidInput) as exception_info:
        policy.validate(_request(_at(11), _at(10)))

    assert exception_info.value.message == 'End time must be after start time'


@pytest.mark.parametrize(
    ('start', 'end'),
    [
        (_at(10).replace(tzinfo=timezone.utc), _at(10, 30).replace(tzinfo=timezone.utc)),
        (_at(10), _at(10, 30).replace(tzinfo=timezone.utc)),
    ],
)
def test_offset_aware_times_are_invalid_input(policy: BookingPolicy, start: datetime, end: datetime) -> None:
    with pytest.raises(InvalidInput) as exception_info:
        policy.validate(_request(start, end))

    assert exception_info.value.message == 'Start and end times must not carry a time zone offset'


def test_start_in_the_past_is_rejected(policy: BookingPolicy) -> None:
    with pytest.raises(InvalidInput) as exception_info:
        policy.validate(_request(_at(7, 30), _at(8, 30)))

    assert exception_info.value.message == 'Start time cannot be in the past'


def test_start_exactly_now_is_allowed(policy: BookingPolicy) -> None:
    policy.validate(_request(NOW, NOW + timedelta(minutes=30)))


@pytest.mark.parametrize(
    ('duration', 'error_detail'),
    [
        (timedelta(minutes=10), 'Minimum appointment duration is 15 minutes'),
        (timedelta(minutes=14, seconds=59), 'Minimum appointment duration is 15 minutes'),
        (timedelta(hours=4, minutes=1), 'Maximum appointment duration is 4 hours'),
    ],
)
def test_duration_outside_bounds_names_the_bound(
    policy: BookingPolicy,
    duration: timedelta,
    error_detail: str,
) -> None:
    with pytest.raises(InvalidInput) as exception_info:
        policy.validate(_request(_at(9), _at(9) + duration))

    assert exception_info.value.message == error_detail


@pytest.mark.parametrize('duration', [timedelta(minutes=15), timedelta(hours=4)])
def test_duration_bounds_are_inclusive(policy: BookingPolicy, duration: timedelta) -> None:
    policy.validate(_request(_at(9), _at(9) + duration))


def test_local_rules_run_before_store_lookups() -> None:
    policy = BookingPolicy(_ExplodingStore(), _ExplodingStore(), FixedClock(NOW))

    with pytest.raises(InvalidInput):
        policy.validate(_request(_at(9), _at(9, 5)))


def test_first_failing_rule_wins(policy: BookingPolicy) -> None:
    # Missing student and past start: only the earlier rule is reported.
    request = _request(_at(6), _at(5), student_id=None)

    with pytest.raises(InvalidInput) as exception_info:
        policy.validate(request)

    assert exception_info.value.message == 'Student ID is required'


def test_unknown_counselor_is_not_found(store: InMemoryAppointmentStore) -> None:
    policy = BookingPolicy(store, InMemoryCounselorDirectory(), FixedClock(NOW))

    with pytest.raises(NotFound):
        policy.validate(_request(_at(10), _at(10, 30)))


def test_directory_failure_is_unavailable(store: InMemoryAppointmentStore) -> None:
    policy = BookingPolicy(store, _BrokenDirectory(), FixedClock(NOW))

    with pytest.raises(Unavailable) as exception_info:
        policy.validate(_request(_at(10), _at(10, 30)))

    assert isinstance(exception_info.value.cause, StoreError)


def test_overlap_raises_conflict_with_offending_appointments(
    policy: BookingPolicy,
    store: InMemoryAppointmentStore,
) -> None:
    existing = _existing(store, _at(10), _at(10, 30))

    with pytest.raises(Conflict) as exception_info:
        policy.validate(_request(_at(10, 15), _at(10, 45)))

    assert exception_info.value.conflicts == [existing]
    assert exception_info.value.conflicting_ids == [existing.id]


def test_cancelled_appointments_do_not_block(policy: BookingPolicy, store: InMemoryAppointmentStore) -> None:
    _existing(store, _at(10), _at(10, 30), status=AppointmentStatus.CANCELLED)

    policy.validate(_request(_at(10), _at(10, 30)))


def test_daily_quota_counts_only_active_appointments(
    policy: BookingPolicy,
    store: InMemoryAppointmentStore,
) -> None:
    _existing(store, _at(9), _at(9, 30), student_id=STUDENT_ID)
    _existing(store, _at(11), _at(11, 30), student_id=STUDENT_ID, status=AppointmentStatus.CANCELLED)

    policy.validate(_request(_at(13), _at(13, 30)))

    _existing(store, _at(14), _at(14, 30), student_id=STUDENT_ID)

    with pytest.raises(InvalidInput) as exception_info:
        policy.validate(_request(_at(15), _at(15, 30)))

    assert exception_info.value.message == 'Maximum of 2 appointments per day allowed'


def test_daily_quota_excludes_the_appointment_being_updated(
    policy: BookingPolicy,
    store: InMemoryAppointmentStore,
) -> None:
    _existing(store, _at(9), _at(9, 30), student_id=STUDENT_ID)
    moving = _existing(store, _at(14), _at(14, 30), student_id=STUDENT_ID)

    policy.validate(_request(_at(15), _at(15, 30), exclude_appointment_id=moving.id))


def test_daily_quota_uses_configured_limit(store: InMemoryAppointmentStore) -> None:
    policy = BookingPolicy(
        store,
        InMemoryCounselorDirectory([COUNSELOR_ID]),
        FixedClock(NOW),
        SchedulingSettings(max_appointments_per_day=1),
    )
    _existing(store, _at(9), _at(9, 30), student_id=STUDENT_ID)

    with pytest.raises(InvalidInput) as exception_info:
        policy.validate(_request(_at(13), _at(13, 30)))

    assert exception_info.value.message == 'Maximum of 1 appointments per day allowed'


def test_start_of_day_truncates_time() -> None:
    assert start_of_day(datetime(2026, 1, 5, 13, 45, 12, 5)) == datetime(2026, 1, 5)
