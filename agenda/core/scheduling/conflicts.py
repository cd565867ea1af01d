"""
Interval conflict checker.

Pure and synchronous: decides whether a candidate interval overlaps any
active booking of the same provider. Intervals are half-open, so a booking
ending at 10:00 does not block one starting at 10:00.
"""

from datetime import datetime, tzinfo
from typing import Iterable, Optional

from agenda.core.scheduling.models import Booking, CandidateSlot, ConflictResult


def intervals_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Half-open overlap test for [start_a, end_a) and [start_b, end_b)."""
    return start_a < end_b and start_b < end_a


def is_blocking(booking: Booking, candidate: CandidateSlot) -> bool:
    """Whether a booking takes part in the conflict check for a candidate."""
    return (
        booking.provider_id == candidate.provider_id
        and booking.is_active
        and booking.id != candidate.exclude_booking_id
    )


def conflict_message(booking: Booking, tz: Optional[tzinfo] = None) -> str:
    """Human-readable explanation naming the occupied interval."""
    start = booking.start_time.astimezone(tz) if tz else booking.start_time
    end = booking.end_time.astimezone(tz) if tz else booking.end_time
    return (
        f"Time conflict: another booking already occupies "
        f"{start:%H:%M} to {end:%H:%M} on {start:%Y-%m-%d}."
    )


def find_conflict(
    candidate: CandidateSlot,
    existing: Iterable[Booking],
    tz: Optional[tzinfo] = None,
) -> ConflictResult:
    """Check a candidate slot against existing bookings.

    Args:
        candidate: Proposed interval
        existing: Bookings to compare against, in store order
        tz: Zone used to render the conflict message

    Returns:
        ConflictResult for the first overlapping booking, or a free result
    """
    for booking in existing:
        if not is_blocking(booking, candidate):
            continue
        if intervals_overlap(
            candidate.start_time,
            candidate.end_time,
            booking.start_time,
            booking.end_time,
        ):
            return ConflictResult(
                has_conflict=True,
                message=conflict_message(booking, tz),
                conflicting_booking_id=booking.id,
            )
    return ConflictResult.free()
