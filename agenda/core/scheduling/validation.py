"""
Debounced validation of a booking form.

Watches the three inputs an availability check needs (start time, provider,
procedures) and re-checks the slot once the user stops editing. Runs on the
asyncio event loop; it never needs locks because every result is gated by a
sequence number before it is applied.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from agenda.config import settings
from agenda.core.scheduling.aggregation import normalize_procedure_ids
from agenda.core.scheduling.availability import AvailabilityService
from agenda.core.scheduling.errors import (
    SchedulingError,
    StaleResponseError,
    TransientIOError,
)

logger = logging.getLogger(__name__)

_UNSET = object()


class ValidationStatus(str, Enum):
    """Inline validation state of the form."""

    IDLE = "idle"
    PENDING = "pending"
    AVAILABLE = "available"
    CONFLICT = "conflict"
    ERROR = "error"


@dataclass(frozen=True)
class ValidationState:
    """What the form should currently show next to the time field."""

    status: ValidationStatus = ValidationStatus.IDLE
    message: Optional[str] = None
    conflicting_booking_id: Optional[str] = None
    sequence: Optional[int] = None

    @property
    def can_submit(self) -> bool:
        """A known conflict or an unverifiable slot blocks submission."""
        return self.status not in (ValidationStatus.CONFLICT, ValidationStatus.ERROR)


class DebouncedValidationController:
    """
    Race-safe, debounced availability validation for one form.

    - Every edit clears the current state and restarts the delay timer.
    - When the timer fires, exactly one check is issued with a new sequence number.
    - A result is applied only if no newer check was issued and no edit
      happened since it was issued; anything else is discarded silently.
    - Nothing is issued while an input is missing.
    - close() cancels the timer and any in-flight check.
    """

    def __init__(
        self,
        service: AvailabilityService,
        delay: Optional[float] = None,
        exclude_booking_id: Optional[str] = None,
        on_change: Optional[Callable[[ValidationState], None]] = None,
    ):
        """Initialize controller.

        Args:
            service: Availability service to query
            delay: Debounce delay in seconds (settings default: 300ms)
            exclude_booking_id: Booking being edited, ignored by the check
            on_change: Called with every new state
        """
        self.service = service
        self.delay = delay if delay is not None else settings.validation_debounce_seconds
        self.exclude_booking_id = exclude_booking_id
        self.on_change = on_change

        self.start_time: Optional[datetime] = None
        self.provider_id: Optional[str] = None
        self.procedure_ids: list[str] = []

        self._state = ValidationState()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._in_flight: set[asyncio.Task] = set()
        self._sequence = 0
        self._applicable: Optional[int] = None
        self._closed = False

    @property
    def state(self) -> ValidationState:
        return self._state

    @property
    def latest_sequence(self) -> int:
        """Sequence number of the most recently issued check."""
        return self._sequence

    @property
    def is_closed(self) -> bool:
        return self._closed

    def update(
        self,
        *,
        start_time=_UNSET,
        provider_id=_UNSET,
        procedure_ids=_UNSET,
    ) -> None:
        """Record a form edit. Only the given fields change."""
        if self._closed:
            return

        changed = False
        if start_time is not _UNSET and start_time != self.start_time:
            self.start_time = start_time
            changed = True
        if provider_id is not _UNSET and provider_id != self.provider_id:
            self.provider_id = provider_id
            changed = True
        if procedure_ids is not _UNSET:
            normalized = normalize_procedure_ids(procedure_ids or [])
            if normalized != self.procedure_ids:
                self.procedure_ids = normalized
                changed = True

        if not changed:
            return

        self._cancel_timer()
        # Results issued before this edit describe inputs that no longer exist
        self._applicable = None
        self._set_state(ValidationState())

        if not self.inputs_complete():
            return

        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._fire)

    def inputs_complete(self) -> bool:
        """Whether all three inputs are present and non-zero."""
        return (
            self.start_time is not None
            and bool(self.provider_id)
            and str(self.provider_id) != "0"
            and bool(self.procedure_ids)
        )

    def close(self) -> None:
        """Detach from a closed form. No state changes after this."""
        self._closed = True
        self._applicable = None
        self._cancel_timer()
        for task in list(self._in_flight):
            task.cancel()

    async def wait_idle(self) -> None:
        """Wait until every issued check has finished."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    def _fire(self) -> None:
        self._timer = None
        if self._closed:
            return

        self._sequence += 1
        sequence = self._sequence
        self._applicable = sequence
        self._set_state(ValidationState(status=ValidationStatus.PENDING, sequence=sequence))

        task = asyncio.get_running_loop().create_task(
            self._run(
                sequence,
                self.provider_id,
                self.start_time,
                list(self.procedure_ids),
            )
        )
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _run(
        self,
        sequence: int,
        provider_id: str,
        start_time: datetime,
        procedure_ids: list[str],
    ) -> None:
        logger.debug(f"Issuing availability check #{sequence}")
        try:
            result = await self.service.check_availability(
                provider_id=provider_id,
                start_time=start_time,
                procedure_ids=procedure_ids,
                exclude_booking_id=self.exclude_booking_id,
            )
        except SchedulingError as e:
            if isinstance(e, TransientIOError):
                logger.warning(f"Availability check #{sequence} could not be completed")
            state = ValidationState(
                status=ValidationStatus.ERROR,
                message=e.message,
                sequence=sequence,
            )
        else:
            if result.has_conflict:
                state = ValidationState(
                    status=ValidationStatus.CONFLICT,
                    message=result.message,
                    conflicting_booking_id=result.conflicting_booking_id,
                    sequence=sequence,
                )
            else:
                state = ValidationState(status=ValidationStatus.AVAILABLE, sequence=sequence)

        try:
            self._apply(sequence, state)
        except StaleResponseError as e:
            logger.debug(e.message)

    def _apply(self, sequence: int, state: ValidationState) -> None:
        if self._closed or sequence != self._applicable:
            raise StaleResponseError(sequence, self._applicable)
        self._set_state(state)

    def _set_state(self, state: ValidationState) -> None:
        if state == self._state:
            return
        self._state = state
        if self.on_change is not None:
            self.on_change(state)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
