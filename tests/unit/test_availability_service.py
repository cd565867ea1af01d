"""Tests for the availability service."""

import asyncio
from datetime import datetime

import pytest

from agenda.core.scheduling.availability import AvailabilityService
from agenda.core.scheduling.cache import ScheduleCache
from agenda.core.scheduling.errors import (
    TRANSIENT_MESSAGE,
    InvalidProcedureError,
    TransientIOError,
    ValidationError,
)
from agenda.core.scheduling.models import BookingStatus
from tests.fakes import CLINIC_TZ, at, make_booking


class TestCheckAvailability:

    @pytest.mark.asyncio
    async def test_conflict_found(self, availability, store):
        """Provider busy 10:00-10:45; 10:30 for a 30 minute procedure collides."""
        store.add(make_booking("b-1", start=at(10), duration=45))

        result = await availability.check_availability("dr-silva", at(10, 30), ["cleaning"])

        assert result.has_conflict is True
        assert result.conflicting_booking_id == "b-1"
        assert "10:00 to 10:45" in result.message

    @pytest.mark.asyncio
    async def test_free_after_existing_booking_ends(self, availability, store):
        store.add(make_booking(start=at(10), duration=45))

        result = await availability.check_availability("dr-silva", at(10, 45), ["cleaning"])

        assert result.available is True

    @pytest.mark.asyncio
    async def test_multi_procedure_duration_used(self, availability, store):
        """75 minutes from 09:00 reaches into a 10:00 booking; 30 would not."""
        store.add(make_booking(start=at(10), duration=45))

        short = await availability.check_availability("dr-silva", at(9), ["cleaning"])
        long = await availability.check_availability("dr-silva", at(9), ["cleaning", "whitening"])

        assert short.available is True
        assert long.has_conflict is True

    @pytest.mark.asyncio
    async def test_long_booking_before_window_found(self, availability, store):
        """A booking longer than any single procedure still blocks."""
        store.add(make_booking(start=at(8), duration=180))

        result = await availability.check_availability("dr-silva", at(10, 30), ["cleaning"])

        assert result.has_conflict is True

    @pytest.mark.asyncio
    async def test_exclude_self(self, availability, store):
        store.add(make_booking("b-1", start=at(10), duration=45))

        result = await availability.check_availability(
            "dr-silva", at(10, 15), ["consult"], exclude_booking_id="b-1"
        )

        assert result.available is True

    @pytest.mark.asyncio
    async def test_cancelled_frees_slot(self, availability, store):
        store.add(make_booking(start=at(10), status=BookingStatus.CANCELLED))

        result = await availability.check_availability("dr-silva", at(10), ["consult"])

        assert result.available is True

    @pytest.mark.asyncio
    async def test_unknown_procedure(self, availability):
        with pytest.raises(InvalidProcedureError):
            await availability.check_availability("dr-silva", at(10), ["nope"])

    @pytest.mark.asyncio
    async def test_missing_provider(self, availability):
        with pytest.raises(ValidationError):
            await availability.check_availability("", at(10), ["cleaning"])

    @pytest.mark.asyncio
    async def test_empty_procedures(self, availability):
        with pytest.raises(ValidationError):
            await availability.check_availability("dr-silva", at(10), [])

    @pytest.mark.asyncio
    async def test_naive_start_rejected(self, availability):
        with pytest.raises(ValidationError) as exc_info:
            await availability.check_availability("dr-silva", datetime(2026, 3, 2, 10), ["cleaning"])

        assert exc_info.value.field == "startTime"


class TestFailClosed:
    """A failed check is never reported as available."""

    @pytest.mark.asyncio
    async def test_store_failure(self, availability, store):
        store.read_error = ConnectionError("connection refused")

        with pytest.raises(TransientIOError) as exc_info:
            await availability.check_availability("dr-silva", at(10), ["cleaning"])

        assert exc_info.value.message == TRANSIENT_MESSAGE

    @pytest.mark.asyncio
    async def test_catalog_failure(self, availability, catalog):
        catalog.error = OSError("catalog offline")

        with pytest.raises(TransientIOError):
            await availability.check_availability("dr-silva", at(10), ["cleaning"])

    @pytest.mark.asyncio
    async def test_timeout(self, catalog, store):
        store.read_delay = 0.5
        service = AvailabilityService(
            catalog=catalog,
            store=store,
            cache=ScheduleCache(redis_client=None, ttl=0),
            timeout=0.05,
            tz=CLINIC_TZ,
        )

        with pytest.raises(TransientIOError):
            await service.check_availability("dr-silva", at(10), ["cleaning"])


class TestCaching:

    @pytest.mark.asyncio
    async def test_window_cached_until_invalidated(self, catalog, store):
        service = AvailabilityService(
            catalog=catalog,
            store=store,
            cache=ScheduleCache(redis_client=None, ttl=60),
            tz=CLINIC_TZ,
        )

        await service.check_availability("dr-silva", at(10), ["cleaning"])
        await service.check_availability("dr-silva", at(10), ["cleaning"])
        assert store.list_calls == 1

        await service.invalidate("dr-silva")
        await service.check_availability("dr-silva", at(10), ["cleaning"])
        assert store.list_calls == 2

    @pytest.mark.asyncio
    async def test_booking_committed_during_load_is_seen(self, catalog, store):
        """A window read before a commit must not outlive the invalidation."""
        service = AvailabilityService(
            catalog=catalog,
            store=store,
            cache=ScheduleCache(redis_client=None, ttl=60),
            tz=CLINIC_TZ,
        )
        loaded = asyncio.Event()
        release = asyncio.Event()
        list_rows = store.list_for_provider

        async def slow_list(provider_id, window_start, window_end):
            rows = await list_rows(provider_id, window_start, window_end)
            loaded.set()
            await release.wait()
            return rows

        store.list_for_provider = slow_list
        in_flight = asyncio.create_task(
            service.check_availability("dr-silva", at(11), ["cleaning"])
        )
        await asyncio.wait_for(loaded.wait(), timeout=1)

        store.add(make_booking("b-2", start=at(11), duration=30))
        await service.invalidate("dr-silva")
        release.set()
        first = await in_flight

        store.list_for_provider = list_rows
        second = await service.check_availability("dr-silva", at(11), ["cleaning"])

        assert first.available is True
        assert second.has_conflict is True
        assert second.conflicting_booking_id == "b-2"
        assert store.list_calls == 2

    @pytest.mark.asyncio
    async def test_procedure_totals_via_cache(self, catalog, store):
        cache = ScheduleCache(redis_client=None, ttl=60)
        service = AvailabilityService(catalog=catalog, store=store, cache=cache, tz=CLINIC_TZ)

        totals = await service.get_procedure_totals(["cleaning", "whitening"])
        await service.get_procedure_totals(["cleaning", "whitening"])

        assert totals.total_duration_minutes == 75
        assert catalog.lookups == 1
