"""Shared fixtures."""

import pytest

from agenda.core.scheduling.availability import AvailabilityService
from agenda.core.scheduling.bookings import BookingService
from agenda.core.scheduling.cache import ScheduleCache
from tests.fakes import CLINIC_TZ, FakeBookingStore, FakeCatalog


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def store():
    return FakeBookingStore()


@pytest.fixture
def availability(catalog, store):
    """Availability service without caching, so store edits are seen at once."""
    return AvailabilityService(
        catalog=catalog,
        store=store,
        cache=ScheduleCache(redis_client=None, ttl=0),
        timeout=1.0,
        tz=CLINIC_TZ,
    )


@pytest.fixture
def booking_service(availability, store):
    return BookingService(availability=availability, store=store)
