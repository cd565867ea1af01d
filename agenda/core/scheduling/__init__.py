"""
Scheduling Module

Conflict detection, availability checks, debounced form validation, calendar
grid geometry and drag-and-drop rescheduling for clinic bookings.

Usage:
    from agenda.core.scheduling import (
        AvailabilityService,
        BookingService,
        DebouncedValidationController,
        RescheduleOrchestrator,
        SlotGrid,
    )

    service = AvailabilityService(catalog=catalog, store=store)
    result = await service.check_availability(
        provider_id="dr-silva",
        start_time=start,
        procedure_ids=["cleaning", "whitening"],
    )
    print(result.available)  # False if the provider is busy
    print(result.message)  # "Time conflict: another booking already occupies ..."
"""

# Errors
from agenda.core.scheduling.errors import (
    SchedulingError,
    ValidationError,
    InvalidProcedureError,
    BookingNotFoundError,
    InvalidTransitionError,
    ConflictError,
    CommitConflictError,
    TransientIOError,
    StaleResponseError,
)

# Models
from agenda.core.scheduling.models import (
    BookingStatus,
    Procedure,
    Booking,
    BookingDraft,
    BookingChanges,
    CandidateSlot,
    ConflictResult,
)

# Collaborator interfaces
from agenda.core.scheduling.ports import BookingStore, ProcedureCatalog

# Pure logic
from agenda.core.scheduling.conflicts import find_conflict, intervals_overlap
from agenda.core.scheduling.aggregation import (
    ProcedureTotals,
    aggregate_procedures,
    normalize_procedure_ids,
)
from agenda.core.scheduling.status import (
    VALID_TRANSITIONS,
    can_transition,
    can_reschedule,
    ensure_transition,
)
from agenda.core.scheduling.grid import GridSlot, Point, SlotGrid

# Services
from agenda.core.scheduling.cache import ScheduleCache
from agenda.core.scheduling.availability import AvailabilityService
from agenda.core.scheduling.bookings import BookingService
from agenda.core.scheduling.validation import (
    DebouncedValidationController,
    ValidationState,
    ValidationStatus,
)
from agenda.core.scheduling.reschedule import (
    DragPhase,
    PointerDown,
    PointerMove,
    PointerUp,
    RescheduleOrchestrator,
    RescheduleOutcome,
)

__all__ = [
    # Errors
    "SchedulingError",
    "ValidationError",
    "InvalidProcedureError",
    "BookingNotFoundError",
    "InvalidTransitionError",
    "ConflictError",
    "CommitConflictError",
    "TransientIOError",
    "StaleResponseError",
    # Models
    "BookingStatus",
    "Procedure",
    "Booking",
    "BookingDraft",
    "BookingChanges",
    "CandidateSlot",
    "ConflictResult",
    # Interfaces
    "BookingStore",
    "ProcedureCatalog",
    # Pure logic
    "find_conflict",
    "intervals_overlap",
    "ProcedureTotals",
    "aggregate_procedures",
    "normalize_procedure_ids",
    "VALID_TRANSITIONS",
    "can_transition",
    "can_reschedule",
    "ensure_transition",
    "GridSlot",
    "Point",
    "SlotGrid",
    # Services
    "ScheduleCache",
    "AvailabilityService",
    "BookingService",
    "DebouncedValidationController",
    "ValidationState",
    "ValidationStatus",
    "DragPhase",
    "PointerDown",
    "PointerMove",
    "PointerUp",
    "RescheduleOrchestrator",
    "RescheduleOutcome",
]
