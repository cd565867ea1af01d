"""
SQL Booking Store

BookingStore backed by SQLAlchemy. Every write re-checks non-overlap inside
its own transaction. On PostgreSQL the transaction runs SERIALIZABLE and the
bookings table carries an exclusion constraint, so two sessions racing for
the same slot cannot both commit.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone, tzinfo
from typing import AsyncGenerator, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agenda.config import settings
from agenda.core.scheduling.conflicts import conflict_message
from agenda.core.scheduling.errors import BookingNotFoundError, CommitConflictError
from agenda.core.scheduling.legacy import legacy_procedure_id
from agenda.core.scheduling.models import (
    Booking,
    BookingChanges,
    BookingDraft,
    BookingStatus,
    ConflictResult,
)
from agenda.core.scheduling.ports import BookingStore
from agenda.infra.database import async_session_factory
from agenda.models.database import NO_OVERLAP_CONSTRAINT, BookingProcedureRecord, BookingRecord

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = "This time slot was just taken, pick another time."

# SQLSTATE codes that mean another transaction won the slot
_SERIALIZATION_FAILURE = "40001"
_DEADLOCK_DETECTED = "40P01"
_EXCLUSION_VIOLATION = "23P01"

_DEFAULT = object()


def _sqlstate(error: DBAPIError) -> Optional[str]:
    orig = error.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive values; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SqlBookingStore(BookingStore):
    """Bookings in the relational database."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        isolation_level=_DEFAULT,
        tz: Optional[tzinfo] = None,
    ):
        """Initialize store.

        Args:
            session_factory: Session factory (application engine if omitted)
            isolation_level: Isolation for write transactions, None to keep
                the driver default (settings: SERIALIZABLE)
            tz: Zone used to render conflict messages
        """
        self.session_factory = session_factory or async_session_factory
        self.isolation_level = (
            settings.booking_isolation_level if isolation_level is _DEFAULT else isolation_level
        )
        self.tz = tz or ZoneInfo(settings.clinic_timezone)

    # === Reads ===

    async def list_for_provider(
        self,
        provider_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Booking]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(BookingRecord)
                .where(
                    BookingRecord.provider_id == provider_id,
                    BookingRecord.starts_at < _as_utc(window_end),
                    BookingRecord.ends_at > _as_utc(window_start),
                )
                .order_by(BookingRecord.starts_at)
            )
            return [self._to_domain(record) for record in result.scalars().all()]

    async def get(self, booking_id: str) -> Optional[Booking]:
        async with self.session_factory() as session:
            record = await session.get(BookingRecord, booking_id)
            return self._to_domain(record) if record else None

    # === Writes ===

    async def create(self, draft: BookingDraft, duration_minutes: int) -> Booking:
        start = _as_utc(draft.start_time)
        end = start + timedelta(minutes=duration_minutes)

        async with self._transaction() as session:
            if draft.status != BookingStatus.CANCELLED:
                await self._ensure_free(session, draft.provider_id, start, end)

            record = BookingRecord(
                patient_id=draft.patient_id,
                provider_id=draft.provider_id,
                procedure_id=legacy_procedure_id(draft.procedure_ids),
                starts_at=start,
                ends_at=end,
                duration_minutes=duration_minutes,
                status=draft.status,
                notes=draft.notes,
                procedures=[
                    BookingProcedureRecord(position=i, procedure_id=procedure_id)
                    for i, procedure_id in enumerate(draft.procedure_ids)
                ],
            )
            session.add(record)
            await session.flush()
            booking = self._to_domain(record)

        logger.debug(f"Stored booking {booking.id}")
        return booking

    async def update(self, booking_id: str, changes: BookingChanges) -> Booking:
        async with self._transaction() as session:
            record = await session.get(BookingRecord, booking_id)
            if record is None:
                raise BookingNotFoundError(booking_id)

            current = self._to_domain(record)
            proposed = changes.apply_to(current)
            start = _as_utc(proposed.start_time)
            end = start + timedelta(minutes=proposed.duration_minutes)

            reactivated = proposed.is_active and not current.is_active
            if proposed.is_active and (changes.touches_schedule or reactivated):
                await self._ensure_free(
                    session,
                    proposed.provider_id,
                    start,
                    end,
                    exclude_booking_id=booking_id,
                )

            record.patient_id = proposed.patient_id
            record.provider_id = proposed.provider_id
            record.starts_at = start
            record.ends_at = end
            record.duration_minutes = proposed.duration_minutes
            record.status = proposed.status
            record.notes = proposed.notes
            if changes.procedure_ids is not None:
                record.procedure_id = legacy_procedure_id(proposed.procedure_ids)
                record.procedures = [
                    BookingProcedureRecord(position=i, procedure_id=procedure_id)
                    for i, procedure_id in enumerate(proposed.procedure_ids)
                ]

            await session.flush()
            updated = self._to_domain(record)

        return updated

    # === Helpers ===

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """Write transaction; database-level slot races become CommitConflictError."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    if self.isolation_level:
                        await session.connection(
                            execution_options={"isolation_level": self.isolation_level}
                        )
                    yield session
        except IntegrityError as e:
            if _sqlstate(e) == _EXCLUSION_VIOLATION or NO_OVERLAP_CONSTRAINT in str(e.orig):
                logger.info("Booking write rejected by the overlap constraint")
                raise CommitConflictError(
                    ConflictResult(has_conflict=True, message=SLOT_TAKEN_MESSAGE)
                ) from e
            raise
        except DBAPIError as e:
            if _sqlstate(e) in (_SERIALIZATION_FAILURE, _DEADLOCK_DETECTED):
                logger.info("Booking write lost a serialization race")
                raise CommitConflictError(
                    ConflictResult(has_conflict=True, message=SLOT_TAKEN_MESSAGE)
                ) from e
            raise

    async def _ensure_free(
        self,
        session: AsyncSession,
        provider_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> None:
        query = (
            select(BookingRecord)
            .where(
                BookingRecord.provider_id == provider_id,
                BookingRecord.status != BookingStatus.CANCELLED,
                BookingRecord.starts_at < end,
                BookingRecord.ends_at > start,
            )
            .order_by(BookingRecord.starts_at)
            .limit(1)
        )
        if exclude_booking_id is not None:
            query = query.where(BookingRecord.id != exclude_booking_id)

        existing = (await session.execute(query)).scalars().first()
        if existing is None:
            return

        blocking = self._to_domain(existing)
        logger.info(
            f"Write for provider {provider_id} at {start.isoformat()} "
            f"overlaps booking {blocking.id}"
        )
        raise CommitConflictError(
            ConflictResult(
                has_conflict=True,
                message=conflict_message(blocking, self.tz),
                conflicting_booking_id=blocking.id,
            )
        )

    def _to_domain(self, record: BookingRecord) -> Booking:
        procedure_ids = [p.procedure_id for p in record.procedures]
        if not procedure_ids and record.procedure_id:
            procedure_ids = [record.procedure_id]
        return Booking(
            id=record.id,
            patient_id=record.patient_id,
            provider_id=record.provider_id,
            procedure_ids=procedure_ids,
            start_time=_as_utc(record.starts_at),
            duration_minutes=record.duration_minutes,
            status=record.status,
            notes=record.notes,
        )
