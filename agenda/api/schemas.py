"""
Shared request/response models.

Wire fields are camelCase; Python attributes are snake_case. Ids arrive as
strings or, from older clients, as integers.
"""

from datetime import datetime
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from agenda.core.scheduling.legacy import from_legacy_payload, to_legacy_payload
from agenda.core.scheduling.models import Booking, BookingStatus


def _coerce_id(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


IdStr = Annotated[str, BeforeValidator(_coerce_id)]


class CamelModel(BaseModel):
    """Base model accepting both camelCase aliases and field names."""

    model_config = ConfigDict(populate_by_name=True)


class LegacyProcedureModel(CamelModel):
    """Request model that also accepts a single legacy `procedureId`."""

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_procedure(cls, data: Any) -> Any:
        return from_legacy_payload(data)


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[Any] = None


class BookingResponse(CamelModel):
    """Booking as returned to clients, legacy procedureId included."""

    id: str
    patient_id: str = Field(..., alias="patientId")
    provider_id: str = Field(..., alias="providerId")
    procedure_ids: list[str] = Field(..., alias="procedureIds")
    procedure_id: Optional[str] = Field(
        default=None,
        alias="procedureId",
        description="First procedure, for clients that only know one",
    )
    start_time: datetime = Field(..., alias="startTime")
    end_time: datetime = Field(..., alias="endTime")
    duration_minutes: int = Field(..., alias="durationMinutes")
    status: BookingStatus
    notes: Optional[str] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls.model_validate(to_legacy_payload(booking))
