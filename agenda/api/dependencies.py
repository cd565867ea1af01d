"""
FastAPI dependencies wiring the scheduling core to its collaborators.

The catalog and store are process-wide singletons. The schedule cache is
built per request around the shared Redis client (or its in-memory fallback
when Redis is down).
"""

from typing import Optional

from fastapi import Depends

from agenda.core.scheduling.availability import AvailabilityService
from agenda.core.scheduling.bookings import BookingService
from agenda.core.scheduling.cache import ScheduleCache
from agenda.core.scheduling.ports import BookingStore, ProcedureCatalog
from agenda.infra.booking_store import SqlBookingStore
from agenda.infra.procedure_catalog import SqlProcedureCatalog
from agenda.infra.redis import get_redis

_catalog: Optional[ProcedureCatalog] = None
_store: Optional[BookingStore] = None


def get_procedure_catalog() -> ProcedureCatalog:
    """Get or create the procedure catalog singleton."""
    global _catalog
    if _catalog is None:
        _catalog = SqlProcedureCatalog()
    return _catalog


def get_booking_store() -> BookingStore:
    """Get or create the booking store singleton."""
    global _store
    if _store is None:
        _store = SqlBookingStore()
    return _store


async def get_schedule_cache() -> ScheduleCache:
    return ScheduleCache(redis_client=await get_redis())


async def get_availability_service(
    catalog: ProcedureCatalog = Depends(get_procedure_catalog),
    store: BookingStore = Depends(get_booking_store),
    cache: ScheduleCache = Depends(get_schedule_cache),
) -> AvailabilityService:
    return AvailabilityService(catalog=catalog, store=store, cache=cache)


async def get_booking_service(
    availability: AvailabilityService = Depends(get_availability_service),
    store: BookingStore = Depends(get_booking_store),
) -> BookingService:
    return BookingService(availability=availability, store=store)
