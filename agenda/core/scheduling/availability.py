"""
Availability Service.

Answers "is this slot free?" for a provider, a start time and a procedure
selection. Combines the procedure catalog, the booking store and the
interval conflict checker behind one asynchronous call.

Failure policy is fail-closed: if the store or catalog cannot be reached, or
the check times out, a TransientIOError is raised. A failed check is never
reported as "no conflict".
"""

import asyncio
import logging
from datetime import datetime, timedelta, tzinfo
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from agenda.config import settings
from agenda.core.scheduling.aggregation import ProcedureTotals, aggregate_procedures, normalize_procedure_ids
from agenda.core.scheduling.cache import ScheduleCache
from agenda.core.scheduling.conflicts import find_conflict
from agenda.core.scheduling.errors import SchedulingError, TransientIOError, ValidationError
from agenda.core.scheduling.models import Booking, CandidateSlot, ConflictResult, to_utc_instant
from agenda.core.scheduling.ports import BookingStore, ProcedureCatalog

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Read-only slot availability checks.

    Coordinates:
    - Procedure catalog (duration lookup)
    - Booking store (bounded window fetch)
    - Interval conflict checker
    """

    def __init__(
        self,
        catalog: ProcedureCatalog,
        store: BookingStore,
        cache: Optional[ScheduleCache] = None,
        timeout: Optional[float] = None,
        tz: Optional[tzinfo] = None,
    ):
        """Initialize service.

        Args:
            catalog: Procedure catalog accessor
            store: Booking store
            cache: Read-through cache (a private in-memory one if omitted)
            timeout: Seconds before a check is abandoned as failed
            tz: Zone used to render conflict messages
        """
        self.catalog = catalog
        self.store = store
        self.cache = cache or ScheduleCache(redis_client=None)
        self.timeout = timeout if timeout is not None else settings.availability_timeout_seconds
        self.tz = tz or ZoneInfo(settings.clinic_timezone)

    async def check_availability(
        self,
        provider_id: str,
        start_time: datetime,
        procedure_ids: Iterable[str],
        exclude_booking_id: Optional[str] = None,
    ) -> ConflictResult:
        """Check whether a provider is free for a procedure selection.

        Args:
            provider_id: Provider to check
            start_time: Proposed start (timezone-aware)
            procedure_ids: Procedures making up the booking
            exclude_booking_id: Booking being edited or moved

        Returns:
            ConflictResult

        Raises:
            ValidationError: Missing provider, naive start or no procedures
            InvalidProcedureError: Unknown procedure id
            TransientIOError: Store/catalog failure or timeout
        """
        if not provider_id:
            raise ValidationError("Provider is required", field="providerId")
        start = to_utc_instant(start_time)
        ids = normalize_procedure_ids(procedure_ids)

        try:
            return await asyncio.wait_for(
                self._check(provider_id, start, ids, exclude_booking_id),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Availability check for provider {provider_id} timed out after {self.timeout}s"
            )
            raise TransientIOError() from e

    async def get_procedure_totals(self, procedure_ids: Iterable[str]) -> ProcedureTotals:
        """Aggregate duration and price for a procedure selection."""
        ids = normalize_procedure_ids(procedure_ids)
        catalog = await self._guarded(
            self.cache.get_procedures(ids, self.catalog.get_procedures),
            "load procedures",
        )
        return aggregate_procedures(ids, catalog)

    async def invalidate(self, provider_id: str) -> None:
        """Forget cached bookings of a provider. Call after every commit."""
        await self.cache.invalidate(provider_id)

    async def _check(
        self,
        provider_id: str,
        start: datetime,
        procedure_ids: list[str],
        exclude_booking_id: Optional[str],
    ) -> ConflictResult:
        totals = await self.get_procedure_totals(procedure_ids)
        lookback = await self._guarded(self.catalog.max_duration_minutes(), "load max duration")

        candidate = CandidateSlot(
            provider_id=provider_id,
            start_time=start,
            duration_minutes=totals.total_duration_minutes,
            exclude_booking_id=exclude_booking_id,
        )
        window_start = start - timedelta(minutes=max(lookback, 0))
        window_end = candidate.end_time

        existing = await self._guarded(
            self._load_window(provider_id, window_start, window_end),
            "load bookings",
        )
        result = find_conflict(candidate, existing, self.tz)

        if result.has_conflict:
            logger.info(
                f"Slot {start.isoformat()} ({totals.total_duration_minutes}min) for provider "
                f"{provider_id} conflicts with booking {result.conflicting_booking_id}"
            )
        else:
            logger.debug(f"Slot {start.isoformat()} for provider {provider_id} is free")
        return result

    async def _load_window(
        self,
        provider_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Booking]:
        return await self.cache.get_bookings(
            provider_id,
            window_start,
            window_end,
            lambda: self.store.list_for_provider(provider_id, window_start, window_end),
        )

    async def _guarded(self, awaitable, action: str):
        """Await a collaborator call, turning infrastructure failures into TransientIOError."""
        try:
            return await awaitable
        except SchedulingError:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Availability check failed to {action}: {e}")
            raise TransientIOError() from e
