"""
Collaborator interfaces consumed by the scheduling core.

The procedure catalog and booking store are owned elsewhere in the
application; the core only depends on these contracts.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from agenda.core.scheduling.models import Booking, BookingChanges, BookingDraft, Procedure


class ProcedureCatalog(ABC):
    """Read-only procedure lookup."""

    @abstractmethod
    async def get_procedures(self, procedure_ids: Iterable[str]) -> dict[str, Procedure]:
        """Fetch procedures by id. Unknown ids are omitted from the result."""

    @abstractmethod
    async def max_duration_minutes(self) -> int:
        """Longest single procedure duration in the catalog."""


class BookingStore(ABC):
    """Persistence for bookings.

    Implementations raise CommitConflictError when a write would overlap an
    active booking of the same provider, regardless of any earlier check.
    Infrastructure failures propagate as-is; the core wraps them.
    """

    @abstractmethod
    async def list_for_provider(
        self,
        provider_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Booking]:
        """Bookings of a provider whose interval intersects [window_start, window_end)."""

    @abstractmethod
    async def get(self, booking_id: str) -> Optional[Booking]:
        """Single booking by id."""

    @abstractmethod
    async def create(self, draft: BookingDraft, duration_minutes: int) -> Booking:
        """Insert a booking and return it with its store-assigned id."""

    @abstractmethod
    async def update(self, booking_id: str, changes: BookingChanges) -> Booking:
        """Apply a partial update. Raises BookingNotFoundError for unknown ids."""
