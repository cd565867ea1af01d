"""
Drag-to-reschedule orchestration.

State machine for one drag gesture on the calendar grid:

    Idle -> Dragging -> Pending -> Committed | RolledBack -> Idle

Pointer events come in as discrete calls (or event objects through
handle()); the orchestrator decides the next state, talks to the
availability service and booking store on drop, and reports where the
booking must be drawn afterwards.
"""

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from agenda.core.scheduling.availability import AvailabilityService
from agenda.core.scheduling.errors import SchedulingError
from agenda.core.scheduling.grid import GridSlot, Point, SlotGrid
from agenda.core.scheduling.models import Booking, BookingChanges
from agenda.core.scheduling.ports import BookingStore
from agenda.core.scheduling.status import can_reschedule

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Could not reschedule the booking, try again."


class DragPhase(str, Enum):
    """Phases of a drag gesture."""

    IDLE = "idle"
    DRAGGING = "dragging"
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class PointerDown:
    booking: Booking
    x: float
    y: float


@dataclass(frozen=True)
class PointerMove:
    x: float
    y: float


@dataclass(frozen=True)
class PointerUp:
    x: float
    y: float


PointerEvent = Union[PointerDown, PointerMove, PointerUp]


@dataclass
class DragState:
    """Transient state of the booking being dragged.

    Pointer moves mutate current_x/current_y in place.
    """

    booking: Booking
    origin_slot: GridSlot
    origin_position: Point
    start_x: float
    start_y: float
    current_x: float
    current_y: float

    @property
    def preview_position(self) -> Point:
        """Where the drag preview is drawn: origin shifted by pointer travel."""
        return Point(
            self.origin_position.x + (self.current_x - self.start_x),
            self.origin_position.y + (self.current_y - self.start_y),
        )


@dataclass(frozen=True)
class RescheduleOutcome:
    """Result of a finished gesture."""

    phase: DragPhase
    booking: Optional[Booking] = None
    position: Optional[Point] = None
    message: Optional[str] = None
    conflicting_booking_id: Optional[str] = None

    @property
    def committed(self) -> bool:
        return self.phase == DragPhase.COMMITTED


class RescheduleOrchestrator:
    """
    Drives drag-and-drop rescheduling.

    Coordinates:
    - Grid geometry (drop position -> slot -> start time)
    - Availability service (advisory check, excluding the moved booking)
    - Booking store (startTime update, the authoritative overlap check)
    """

    def __init__(
        self,
        grid: SlotGrid,
        availability: AvailabilityService,
        store: BookingStore,
        on_refresh: Optional[Callable[[], Any]] = None,
    ):
        """Initialize orchestrator.

        Args:
            grid: Displayed calendar grid
            availability: Availability service
            store: Booking store used to commit the move
            on_refresh: Called after a successful commit (sync or async)
        """
        self.grid = grid
        self.availability = availability
        self.store = store
        self.on_refresh = on_refresh

        self._drag: Optional[DragState] = None
        self._locked: set[str] = set()
        self.last_outcome: Optional[RescheduleOutcome] = None

    @property
    def phase(self) -> DragPhase:
        if self._drag is not None:
            return DragPhase.DRAGGING
        if self._locked:
            return DragPhase.PENDING
        return DragPhase.IDLE

    @property
    def drag(self) -> Optional[DragState]:
        return self._drag

    def is_locked(self, booking_id: str) -> bool:
        """Whether a dropped booking is still waiting for its commit."""
        return booking_id in self._locked

    # === Events ===

    def pointer_down(self, booking: Booking, x: float, y: float) -> DragPhase:
        """Pick up a booking."""
        if self._drag is not None:
            return self.phase
        if booking.id in self._locked:
            logger.debug(f"Ignoring drag of booking {booking.id}: reschedule pending")
            return self.phase
        if not can_reschedule(booking.status):
            logger.debug(f"Ignoring drag of booking {booking.id} in status {booking.status.value}")
            return self.phase

        origin_slot = self.grid.slot_at(booking.start_time)
        origin_position = self.grid.slot_position(origin_slot) if origin_slot else None
        if origin_slot is None or origin_position is None:
            logger.debug(f"Ignoring drag of booking {booking.id}: not on the displayed grid")
            return self.phase

        self._drag = DragState(
            booking=booking,
            origin_slot=origin_slot,
            origin_position=origin_position,
            start_x=x,
            start_y=y,
            current_x=x,
            current_y=y,
        )
        return DragPhase.DRAGGING

    def pointer_move(self, x: float, y: float) -> DragPhase:
        """Track the pointer. Visual only, no I/O."""
        drag = self._drag
        if drag is not None:
            drag.current_x = x
            drag.current_y = y
        return self.phase

    async def pointer_up(self, x: float, y: float) -> RescheduleOutcome:
        """Drop the booking and try to commit the move."""
        drag = self._drag
        if drag is None:
            return self._finish(RescheduleOutcome(phase=DragPhase.IDLE))

        drag.current_x = x
        drag.current_y = y
        self._drag = None
        booking = drag.booking

        target = self.grid.position_to_slot(x, y)
        if target is None or target == drag.origin_slot:
            return self._finish(
                RescheduleOutcome(
                    phase=DragPhase.IDLE,
                    booking=booking,
                    position=drag.origin_position,
                )
            )

        new_start = self.grid.slot_start(target)
        self._locked.add(booking.id)
        try:
            result = await self.availability.check_availability(
                provider_id=booking.provider_id,
                start_time=new_start,
                procedure_ids=booking.procedure_ids,
                exclude_booking_id=booking.id,
            )
            if result.has_conflict:
                return self._roll_back(drag, result.message, result.conflicting_booking_id)

            updated = await self.store.update(booking.id, BookingChanges(start_time=new_start))
        except SchedulingError as e:
            # Conflict found by the store, transient failure or vanished booking
            return self._roll_back(drag, e.message, getattr(e, "conflicting_booking_id", None))
        except Exception as e:
            logger.error(f"Failed to reschedule booking {booking.id}: {e}")
            return self._roll_back(drag, SAVE_FAILED_MESSAGE)
        finally:
            self._locked.discard(booking.id)

        logger.info(
            f"Booking {booking.id} moved from {booking.start_time.isoformat()} "
            f"to {updated.start_time.isoformat()}"
        )
        await self.availability.invalidate(booking.provider_id)
        await self._refresh()

        return self._finish(
            RescheduleOutcome(
                phase=DragPhase.COMMITTED,
                booking=updated,
                position=self.grid.slot_position(target),
            )
        )

    def cancel(self) -> RescheduleOutcome:
        """Abandon the active drag (pointer left the grid, Escape key)."""
        drag = self._drag
        self._drag = None
        if drag is None:
            return self._finish(RescheduleOutcome(phase=DragPhase.IDLE))
        return self._finish(
            RescheduleOutcome(
                phase=DragPhase.IDLE,
                booking=drag.booking,
                position=drag.origin_position,
            )
        )

    async def handle(self, event: PointerEvent) -> DragPhase:
        """Feed one pointer event and return the resulting phase.

        For PointerUp the gesture's terminal phase is returned and the full
        result is kept in last_outcome.
        """
        if isinstance(event, PointerDown):
            return self.pointer_down(event.booking, event.x, event.y)
        if isinstance(event, PointerMove):
            return self.pointer_move(event.x, event.y)
        if isinstance(event, PointerUp):
            outcome = await self.pointer_up(event.x, event.y)
            return outcome.phase
        raise TypeError(f"Unsupported pointer event: {event!r}")

    # === Helpers ===

    def _roll_back(
        self,
        drag: DragState,
        message: Optional[str],
        conflicting_booking_id: Optional[str] = None,
    ) -> RescheduleOutcome:
        logger.info(f"Reschedule of booking {drag.booking.id} rolled back: {message}")
        return self._finish(
            RescheduleOutcome(
                phase=DragPhase.ROLLED_BACK,
                booking=drag.booking,
                position=drag.origin_position,
                message=message,
                conflicting_booking_id=conflicting_booking_id,
            )
        )

    def _finish(self, outcome: RescheduleOutcome) -> RescheduleOutcome:
        self.last_outcome = outcome
        return outcome

    async def _refresh(self) -> None:
        if self.on_refresh is None:
            return
        try:
            result = self.on_refresh()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Calendar refresh after reschedule failed: {e}")
