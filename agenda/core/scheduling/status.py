"""Booking status lifecycle."""

from typing import Set

from agenda.core.scheduling.errors import InvalidTransitionError
from agenda.core.scheduling.models import BookingStatus


# Valid status transitions
VALID_TRANSITIONS: dict[BookingStatus, Set[BookingStatus]] = {
    BookingStatus.SCHEDULED: {
        BookingStatus.IN_PROGRESS,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.IN_PROGRESS: {
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.COMPLETED: set(),  # Terminal state
    BookingStatus.CANCELLED: set(),  # Terminal state
}


def can_transition(from_status: BookingStatus, to_status: BookingStatus) -> bool:
    """Check if a status transition is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, set())


def ensure_transition(from_status: BookingStatus, to_status: BookingStatus) -> None:
    """Raise InvalidTransitionError unless the change is allowed.

    Re-asserting the current status is a no-op, not a transition.
    """
    if from_status == to_status:
        return
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status.value, to_status.value)


def is_terminal_status(status: BookingStatus) -> bool:
    """Check if status is terminal (no further transitions)."""
    return not VALID_TRANSITIONS.get(status)


def can_reschedule(status: BookingStatus) -> bool:
    """Only bookings that have not started can be moved."""
    return status == BookingStatus.SCHEDULED
