"""
Booking Service.

Create, update and cancel bookings. Runs the advisory availability check so
the user gets a precise message, then hands the write to the store, which
re-validates non-overlap atomically. Cache entries of affected providers are
invalidated after every successful write.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Awaitable, TypeVar

from agenda.core.scheduling.availability import AvailabilityService
from agenda.core.scheduling.errors import (
    BookingNotFoundError,
    ConflictError,
    SchedulingError,
    TransientIOError,
    ValidationError,
)
from agenda.core.scheduling.models import (
    Booking,
    BookingChanges,
    BookingDraft,
    BookingStatus,
    to_utc_instant,
)
from agenda.core.scheduling.ports import BookingStore
from agenda.core.scheduling.status import ensure_transition

logger = logging.getLogger(__name__)

T = TypeVar("T")

STORE_FAILED_MESSAGE = "Could not save the booking, try again."


class BookingService:
    """Booking mutations with lifecycle rules and conflict checks."""

    def __init__(self, availability: AvailabilityService, store: BookingStore):
        self.availability = availability
        self.store = store

    async def get_booking(self, booking_id: str) -> Booking:
        booking = await self._call(self.store.get(booking_id))
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    async def list_bookings(
        self,
        provider_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Booking]:
        """Bookings of a provider intersecting a window, any status."""
        start = to_utc_instant(window_start, "start")
        end = to_utc_instant(window_end, "end")
        if end <= start:
            raise ValidationError("end must be after start", field="end")
        return await self._call(self.store.list_for_provider(provider_id, start, end))

    async def create_booking(self, draft: BookingDraft) -> Booking:
        """Create a booking in the Scheduled state.

        Raises:
            ValidationError: Missing or malformed fields
            ConflictError: The slot is taken (pre-check or store)
            TransientIOError: Availability could not be verified or saved
        """
        if not draft.patient_id:
            raise ValidationError("Patient is required", field="patientId")
        if not draft.provider_id:
            raise ValidationError("Provider is required", field="providerId")
        if draft.status != BookingStatus.SCHEDULED:
            raise ValidationError("New bookings start as Scheduled", field="status")

        start = to_utc_instant(draft.start_time)
        totals = await self.availability.get_procedure_totals(draft.procedure_ids)

        result = await self.availability.check_availability(
            provider_id=draft.provider_id,
            start_time=start,
            procedure_ids=totals.procedure_ids,
        )
        if result.has_conflict:
            raise ConflictError(result)

        normalized = replace(draft, start_time=start, procedure_ids=totals.procedure_ids)
        booking = await self._call(self.store.create(normalized, totals.total_duration_minutes))

        logger.info(
            f"Booking {booking.id} created for provider {booking.provider_id} "
            f"at {booking.start_time.isoformat()} ({booking.duration_minutes}min)"
        )
        await self.availability.invalidate(booking.provider_id)
        return booking

    async def update_booking(self, booking_id: str, changes: BookingChanges) -> Booking:
        """Apply a partial update.

        Status changes follow the booking lifecycle. Changes to time,
        provider or procedures of an active booking are re-checked for
        conflicts, ignoring the booking itself.
        """
        if changes.is_empty():
            raise ValidationError("No changes given")

        current = await self.get_booking(booking_id)
        changes = replace(changes)

        if changes.status is not None:
            ensure_transition(current.status, changes.status)
        if changes.start_time is not None:
            changes.start_time = to_utc_instant(changes.start_time)
        if changes.procedure_ids is not None:
            totals = await self.availability.get_procedure_totals(changes.procedure_ids)
            changes.procedure_ids = totals.procedure_ids
            changes.duration_minutes = totals.total_duration_minutes

        proposed = changes.apply_to(current)
        if changes.touches_schedule and proposed.is_active:
            result = await self.availability.check_availability(
                provider_id=proposed.provider_id,
                start_time=proposed.start_time,
                procedure_ids=proposed.procedure_ids,
                exclude_booking_id=booking_id,
            )
            if result.has_conflict:
                raise ConflictError(result)

        updated = await self._call(self.store.update(booking_id, changes))

        logger.info(f"Booking {booking_id} updated")
        await self.availability.invalidate(current.provider_id)
        if updated.provider_id != current.provider_id:
            await self.availability.invalidate(updated.provider_id)
        return updated

    async def cancel_booking(self, booking_id: str) -> Booking:
        """Retire a booking. Its slot becomes free immediately."""
        return await self.update_booking(booking_id, BookingChanges(status=BookingStatus.CANCELLED))

    async def _call(self, awaitable: Awaitable[T]) -> T:
        """Await a store call; infrastructure failures become TransientIOError."""
        try:
            return await awaitable
        except SchedulingError:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Booking store call failed: {e}")
            raise TransientIOError(STORE_FAILED_MESSAGE) from e
