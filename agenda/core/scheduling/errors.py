"""
Scheduling error taxonomy.

Every failure the scheduling core can report derives from SchedulingError so
callers (HTTP handlers, the validation controller, the reschedule
orchestrator) can branch on the kind of failure instead of parsing messages.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from agenda.core.scheduling.models import ConflictResult

TRANSIENT_MESSAGE = "Could not verify availability, try again."


class SchedulingError(Exception):
    """Base class for scheduling failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Input is incomplete or malformed. Recovered locally, never retried."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidProcedureError(ValidationError):
    """One or more procedure ids are not in the catalog."""

    def __init__(self, procedure_ids: list[str]):
        joined = ", ".join(procedure_ids)
        super().__init__(f"Unknown procedure(s): {joined}", field="procedureIds")
        self.procedure_ids = procedure_ids


class BookingNotFoundError(SchedulingError):
    """The targeted booking does not exist."""

    def __init__(self, booking_id: str):
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


class InvalidTransitionError(SchedulingError):
    """A status change that the booking lifecycle does not allow."""

    def __init__(self, from_status: str, to_status: str):
        super().__init__(f"Cannot change booking status from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class ConflictError(SchedulingError):
    """The requested slot overlaps an active booking of the same provider."""

    def __init__(self, result: "ConflictResult"):
        super().__init__(result.message or "This time slot is already taken")
        self.result = result

    @property
    def conflicting_booking_id(self) -> Optional[str]:
        return self.result.conflicting_booking_id


class CommitConflictError(ConflictError):
    """The store rejected a write that passed the advisory pre-check.

    Raised when another session booked the slot between the check and the
    write (exclusion constraint, serialization failure or the in-transaction
    re-check).
    """


class TransientIOError(SchedulingError):
    """Store, network or timeout failure.

    Availability is unknown. Never to be interpreted as "slot is free".
    """

    def __init__(self, message: str = TRANSIENT_MESSAGE):
        super().__init__(message)


class StaleResponseError(SchedulingError):
    """A debounced check resolved after a newer one superseded it."""

    def __init__(self, sequence: int, latest: Optional[int]):
        super().__init__(f"Discarded availability result #{sequence} (latest #{latest})")
        self.sequence = sequence
        self.latest = latest
