"""Tests for booking creation, updates and cancellation."""

from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from agenda.core.scheduling.bookings import STORE_FAILED_MESSAGE
from agenda.core.scheduling.errors import (
    BookingNotFoundError,
    CommitConflictError,
    ConflictError,
    InvalidProcedureError,
    InvalidTransitionError,
    TransientIOError,
    ValidationError,
)
from agenda.core.scheduling.models import (
    BookingChanges,
    BookingDraft,
    BookingStatus,
    ConflictResult,
)
from tests.fakes import at, make_booking


def draft(start=None, procedure_ids=None, provider_id="dr-silva", **kwargs):
    return BookingDraft(
        patient_id=kwargs.pop("patient_id", "p-1"),
        provider_id=provider_id,
        procedure_ids=procedure_ids or ["cleaning", "whitening"],
        start_time=start or at(9),
        **kwargs,
    )


class TestCreateBooking:

    @pytest.mark.asyncio
    async def test_duration_from_procedures(self, booking_service, store):
        booking = await booking_service.create_booking(draft())

        assert booking.duration_minutes == 75
        assert booking.procedure_ids == ["cleaning", "whitening"]
        assert booking.status == BookingStatus.SCHEDULED
        assert booking.id in store.bookings

    @pytest.mark.asyncio
    async def test_start_normalized_to_utc(self, booking_service):
        booking = await booking_service.create_booking(draft(start=at(9)))

        assert booking.start_time.utcoffset().total_seconds() == 0
        assert booking.start_time == at(9)

    @pytest.mark.asyncio
    async def test_conflict(self, booking_service, store):
        store.add(make_booking("b-1", start=at(10), duration=45))

        with pytest.raises(ConflictError) as exc_info:
            await booking_service.create_booking(draft(start=at(9)))

        assert exc_info.value.conflicting_booking_id == "b-1"
        assert len(store.bookings) == 1

    @pytest.mark.asyncio
    async def test_store_rejects_race(self, booking_service, store):
        """Pre-check passed but the store found the slot taken."""
        store.write_error = CommitConflictError(
            ConflictResult(has_conflict=True, message="Slot just taken")
        )

        with pytest.raises(CommitConflictError):
            await booking_service.create_booking(draft())

    @pytest.mark.asyncio
    async def test_store_failure_is_transient(self, booking_service, store):
        store.write_error = OSError("disk full")

        with pytest.raises(TransientIOError) as exc_info:
            await booking_service.create_booking(draft())

        assert exc_info.value.message == STORE_FAILED_MESSAGE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs,field",
        [
            ({"patient_id": ""}, "patientId"),
            ({"provider_id": ""}, "providerId"),
            ({"status": BookingStatus.COMPLETED}, "status"),
        ],
    )
    async def test_invalid_draft(self, booking_service, kwargs, field):
        with pytest.raises(ValidationError) as exc_info:
            await booking_service.create_booking(draft(**kwargs))

        assert exc_info.value.field == field

    @pytest.mark.asyncio
    async def test_naive_start(self, booking_service):
        with pytest.raises(ValidationError):
            await booking_service.create_booking(draft(start=datetime(2026, 3, 2, 9)))

    @pytest.mark.asyncio
    async def test_unknown_procedure(self, booking_service):
        with pytest.raises(InvalidProcedureError):
            await booking_service.create_booking(draft(procedure_ids=["nope"]))

    @pytest.mark.asyncio
    async def test_cache_invalidated(self, booking_service, availability):
        availability.invalidate = AsyncMock()

        booking = await booking_service.create_booking(draft())

        availability.invalidate.assert_awaited_once_with(booking.provider_id)


class TestUpdateBooking:

    @pytest.mark.asyncio
    async def test_move(self, booking_service, store):
        store.add(make_booking("b-1", start=at(10)))

        updated = await booking_service.update_booking("b-1", BookingChanges(start_time=at(14)))

        assert updated.start_time == at(14)
        assert updated.duration_minutes == 45

    @pytest.mark.asyncio
    async def test_move_into_conflict(self, booking_service, store):
        store.add(make_booking("b-1", start=at(10)))
        store.add(make_booking("b-2", start=at(14)))

        with pytest.raises(ConflictError) as exc_info:
            await booking_service.update_booking("b-1", BookingChanges(start_time=at(14, 15)))

        assert exc_info.value.conflicting_booking_id == "b-2"
        assert store.bookings["b-1"].start_time == at(10)

    @pytest.mark.asyncio
    async def test_procedures_change_recomputes_duration(self, booking_service, store):
        store.add(make_booking("b-1", start=at(10), duration=45, procedure_ids=["consult"]))

        updated = await booking_service.update_booking(
            "b-1", BookingChanges(procedure_ids=["cleaning", "whitening"])
        )

        assert updated.duration_minutes == 75
        assert updated.procedure_ids == ["cleaning", "whitening"]

    @pytest.mark.asyncio
    async def test_longer_duration_collides(self, booking_service, store):
        store.add(make_booking("b-1", start=at(10), duration=45))
        store.add(make_booking("b-2", start=at(11)))

        with pytest.raises(ConflictError):
            await booking_service.update_booking(
                "b-1", BookingChanges(procedure_ids=["cleaning", "whitening"])
            )

    @pytest.mark.asyncio
    async def test_provider_change_checked(self, booking_service, store):
        store.add(make_booking("b-1", start=at(10)))
        store.add(make_booking("b-2", start=at(10), provider_id="dr-costa"))

        with pytest.raises(ConflictError):
            await booking_service.update_booking("b-1", BookingChanges(provider_id="dr-costa"))

    @pytest.mark.asyncio
    async def test_notes_only_skips_check(self, booking_service, store, availability):
        store.add(make_booking("b-1", start=at(10)))
        availability.check_availability = AsyncMock()

        updated = await booking_service.update_booking("b-1", BookingChanges(notes="Bring x-rays"))

        availability.check_availability.assert_not_awaited()
        assert updated.notes == "Bring x-rays"

    @pytest.mark.asyncio
    async def test_status_transition(self, booking_service, store):
        store.add(make_booking("b-1"))

        updated = await booking_service.update_booking(
            "b-1", BookingChanges(status=BookingStatus.IN_PROGRESS)
        )

        assert updated.status == BookingStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_illegal_transition(self, booking_service, store):
        store.add(make_booking("b-1", status=BookingStatus.COMPLETED))

        with pytest.raises(InvalidTransitionError):
            await booking_service.update_booking(
                "b-1", BookingChanges(status=BookingStatus.SCHEDULED)
            )

    @pytest.mark.asyncio
    async def test_empty_changes(self, booking_service, store):
        store.add(make_booking("b-1"))

        with pytest.raises(ValidationError):
            await booking_service.update_booking("b-1", BookingChanges())

    @pytest.mark.asyncio
    async def test_unknown_booking(self, booking_service):
        with pytest.raises(BookingNotFoundError):
            await booking_service.update_booking("missing", BookingChanges(notes="x"))

    @pytest.mark.asyncio
    async def test_provider_change_invalidates_both(self, booking_service, store, availability):
        store.add(make_booking("b-1", start=at(10)))
        availability.invalidate = AsyncMock()

        await booking_service.update_booking("b-1", BookingChanges(provider_id="dr-costa"))

        invalidated = [call.args[0] for call in availability.invalidate.await_args_list]
        assert invalidated == ["dr-silva", "dr-costa"]


class TestCancelBooking:

    @pytest.mark.asyncio
    async def test_cancel_frees_slot(self, booking_service, store, availability):
        store.add(make_booking("b-1", start=at(10)))

        cancelled = await booking_service.cancel_booking("b-1")
        result = await availability.check_availability("dr-silva", at(10), ["consult"])

        assert cancelled.status == BookingStatus.CANCELLED
        assert result.available is True

    @pytest.mark.asyncio
    async def test_cancel_completed_rejected(self, booking_service, store):
        store.add(make_booking("b-1", status=BookingStatus.COMPLETED))

        with pytest.raises(InvalidTransitionError):
            await booking_service.cancel_booking("b-1")


class TestListBookings:

    @pytest.mark.asyncio
    async def test_window(self, booking_service, store):
        store.add(make_booking("b-1", start=at(10)))
        store.add(make_booking("b-2", start=at(15)))
        store.add(make_booking("b-3", start=at(10), provider_id="dr-costa"))

        bookings = await booking_service.list_bookings("dr-silva", at(9), at(12))

        assert [b.id for b in bookings] == ["b-1"]

    @pytest.mark.asyncio
    async def test_inverted_window(self, booking_service):
        with pytest.raises(ValidationError):
            await booking_service.list_bookings("dr-silva", at(12), at(9))
