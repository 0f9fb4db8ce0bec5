"""Error kinds raised by the scheduling engine and its storage collaborators."""

from typing import Sequence

UNAVAILABLE_MESSAGE = 'Scheduling is temporarily unavailable. Please try again later.'


class SchedulingError(Exception):
    """Base class for every error the scheduling service reports to callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def user_message(self) -> str:
        return self.message


class InvalidInput(SchedulingError):
    """Malformed or policy-violating request. Safe to show to the end user."""


class NotFound(SchedulingError):
    """Referenced counselor or appointment does not exist."""


class Conflict(SchedulingError):
    """Requested interval overlaps one or more existing bookings."""

    def __init__(self, message: str, conflicts: Sequence = ()):
        super().__init__(message)
        self.conflicts = list(conflicts)

    @property
    def conflicting_ids(self) -> list[int]:
        return [appointment.id for appointment in self.conflicts if appointment.id is not None]


class InvalidState(SchedulingError):
    """Attempted transition out of a terminal status."""


class Unavailable(SchedulingError):
    """A collaborator failed. The cause is kept for logging only."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause

    @property
    def user_message(self) -> str:
        return UNAVAILABLE_MESSAGE


class StoreError(Exception):
    """Raised by store implementations when the backing storage fails."""


class StoreConflictError(StoreError):
    """The storage layer refused a write because it violates a uniqueness rule."""


class StoreTimeoutError(StoreError):
    """A store lock or connection could not be obtained in time."""
