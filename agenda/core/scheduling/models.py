"""Scheduling value objects shared by the checker, services and orchestrator."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from agenda.core.scheduling.errors import ValidationError


class BookingStatus(str, Enum):
    """Booking status vocabulary exposed across the wire."""

    SCHEDULED = "Scheduled"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


def to_utc_instant(value: datetime, field_name: str = "startTime") -> datetime:
    """Normalize an aware datetime to UTC.

    Naive datetimes are rejected: a wall-clock value without an offset is
    ambiguous and drifts when client and server zones differ.
    """
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(f"{field_name} must include a timezone offset", field=field_name)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Procedure:
    """Catalog entry. Read-only to the scheduling core."""

    id: str
    name: str
    duration_minutes: int
    price: Decimal

    @classmethod
    def from_dict(cls, data: dict) -> "Procedure":
        """Create from an API or cache dict."""
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            duration_minutes=int(data.get("duration_minutes", data.get("duration", 0))),
            price=Decimal(str(data.get("price", "0"))),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary (price as a decimal string)."""
        return {
            "id": self.id,
            "name": self.name,
            "duration_minutes": self.duration_minutes,
            "price": str(self.price),
        }


@dataclass
class Booking:
    """One scheduled encounter between a patient and a provider."""

    id: str
    patient_id: str
    provider_id: str
    procedure_ids: list[str]
    start_time: datetime
    duration_minutes: int
    status: BookingStatus = BookingStatus.SCHEDULED
    notes: Optional[str] = None

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)

    @property
    def is_active(self) -> bool:
        """Whether the booking still occupies its slot."""
        return self.status != BookingStatus.CANCELLED

    @classmethod
    def from_dict(cls, data: dict) -> "Booking":
        """Create from a cache or API dict."""
        start = data["start_time"]
        if isinstance(start, str):
            start = datetime.fromisoformat(start)
        return cls(
            id=str(data["id"]),
            patient_id=str(data["patient_id"]),
            provider_id=str(data["provider_id"]),
            procedure_ids=[str(p) for p in data.get("procedure_ids", [])],
            start_time=to_utc_instant(start),
            duration_minutes=int(data["duration_minutes"]),
            status=BookingStatus(data.get("status", BookingStatus.SCHEDULED.value)),
            notes=data.get("notes"),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "provider_id": self.provider_id,
            "procedure_ids": list(self.procedure_ids),
            "start_time": self.start_time.isoformat(),
            "duration_minutes": self.duration_minutes,
            "status": self.status.value,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class CandidateSlot:
    """A proposed interval for a provider, checked but not yet stored."""

    provider_id: str
    start_time: datetime
    duration_minutes: int
    exclude_booking_id: Optional[str] = None

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)


@dataclass(frozen=True)
class ConflictResult:
    """Outcome of one availability check. Never persisted."""

    has_conflict: bool
    message: Optional[str] = None
    conflicting_booking_id: Optional[str] = None

    @classmethod
    def free(cls) -> "ConflictResult":
        return cls(has_conflict=False)

    @property
    def available(self) -> bool:
        return not self.has_conflict

    def to_response(self) -> dict:
        """Wire shape: {available, conflictMessage?}."""
        response: dict = {"available": self.available}
        if self.has_conflict and self.message:
            response["conflictMessage"] = self.message
        return response


@dataclass
class BookingDraft:
    """Payload for creating a booking."""

    patient_id: str
    provider_id: str
    procedure_ids: list[str]
    start_time: datetime
    status: BookingStatus = BookingStatus.SCHEDULED
    notes: Optional[str] = None


@dataclass
class BookingChanges:
    """Partial update. Fields left as None are not touched."""

    patient_id: Optional[str] = None
    provider_id: Optional[str] = None
    procedure_ids: Optional[list[str]] = None
    start_time: Optional[datetime] = None
    status: Optional[BookingStatus] = None
    notes: Optional[str] = None
    # Filled in by the booking service when procedures change
    duration_minutes: Optional[int] = field(default=None, repr=False)

    @property
    def touches_schedule(self) -> bool:
        """Whether the change can create a new overlap."""
        return (
            self.start_time is not None
            or self.provider_id is not None
            or self.procedure_ids is not None
        )

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.patient_id,
                self.provider_id,
                self.procedure_ids,
                self.start_time,
                self.status,
                self.notes,
            )
        )

    def apply_to(self, booking: Booking) -> Booking:
        """Return the booking as it would look after this change."""
        updates: dict = {}
        if self.patient_id is not None:
            updates["patient_id"] = self.patient_id
        if self.provider_id is not None:
            updates["provider_id"] = self.provider_id
        if self.procedure_ids is not None:
            updates["procedure_ids"] = list(self.procedure_ids)
        if self.duration_minutes is not None:
            updates["duration_minutes"] = self.duration_minutes
        if self.start_time is not None:
            updates["start_time"] = self.start_time
        if self.status is not None:
            updates["status"] = self.status
        if self.notes is not None:
            updates["notes"] = self.notes
        return replace(booking, **updates)
