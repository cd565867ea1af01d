"""
Booking API Endpoints.

Create, list, update and cancel bookings. Every write is checked for
conflicts against the provider's active bookings; the store re-validates
atomically so a slot taken in the meantime still yields 409.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import AwareDatetime, Field

from agenda.api.dependencies import get_booking_service
from agenda.api.schemas import BookingResponse, ErrorResponse, IdStr, LegacyProcedureModel
from agenda.core.scheduling.bookings import BookingService
from agenda.core.scheduling.models import BookingChanges, BookingDraft, BookingStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


class BookingCreateRequest(LegacyProcedureModel):
    """New booking."""

    patient_id: IdStr = Field(..., alias="patientId")
    provider_id: IdStr = Field(..., alias="providerId")
    procedure_ids: list[IdStr] = Field(
        default_factory=list,
        alias="procedureIds",
        description="Procedures in order; a single legacy procedureId is also accepted",
    )
    start_time: AwareDatetime = Field(
        ...,
        alias="startTime",
        examples=["2026-03-02T10:00:00-03:00"],
    )
    status: BookingStatus = BookingStatus.SCHEDULED
    notes: Optional[str] = Field(default=None, max_length=2000)

    def to_draft(self) -> BookingDraft:
        return BookingDraft(
            patient_id=self.patient_id,
            provider_id=self.provider_id,
            procedure_ids=list(self.procedure_ids),
            start_time=self.start_time,
            status=self.status,
            notes=self.notes,
        )


class BookingUpdateRequest(LegacyProcedureModel):
    """Partial update. Omitted fields are left unchanged."""

    patient_id: Optional[IdStr] = Field(default=None, alias="patientId")
    provider_id: Optional[IdStr] = Field(default=None, alias="providerId")
    procedure_ids: Optional[list[IdStr]] = Field(default=None, alias="procedureIds")
    start_time: Optional[AwareDatetime] = Field(default=None, alias="startTime")
    status: Optional[BookingStatus] = None
    notes: Optional[str] = Field(default=None, max_length=2000)

    def to_changes(self) -> BookingChanges:
        return BookingChanges(
            patient_id=self.patient_id,
            provider_id=self.provider_id,
            procedure_ids=list(self.procedure_ids) if self.procedure_ids is not None else None,
            start_time=self.start_time,
            status=self.status,
            notes=self.notes,
        )


_WRITE_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Booking not found"},
    409: {"model": ErrorResponse, "description": "Slot taken or status change not allowed"},
    422: {"model": ErrorResponse, "description": "Invalid input"},
    503: {"model": ErrorResponse, "description": "Store unavailable"},
}


@router.get("", response_model=list[BookingResponse], summary="List provider bookings")
async def list_bookings(
    provider_id: str = Query(..., alias="providerId"),
    start: datetime = Query(..., description="Window start (ISO-8601 with offset)"),
    end: datetime = Query(..., description="Window end (ISO-8601 with offset)"),
    service: BookingService = Depends(get_booking_service),
) -> list[BookingResponse]:
    """Bookings of a provider intersecting [start, end), any status."""
    bookings = await service.list_bookings(provider_id, start, end)
    return [BookingResponse.from_booking(b) for b in bookings]


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    responses={404: {"model": ErrorResponse, "description": "Booking not found"}},
)
async def get_booking(
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return BookingResponse.from_booking(await service.get_booking(booking_id))


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a booking",
    responses=_WRITE_RESPONSES,
)
async def create_booking(
    request: BookingCreateRequest,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking = await service.create_booking(request.to_draft())
    return BookingResponse.from_booking(booking)


@router.patch(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Update a booking",
    responses=_WRITE_RESPONSES,
)
async def update_booking(
    booking_id: str,
    request: BookingUpdateRequest,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Apply a partial update.

    Moving a booking (startTime only) is what drag-and-drop rescheduling
    sends. Status changes must follow the booking lifecycle.
    """
    booking = await service.update_booking(booking_id, request.to_changes())
    return BookingResponse.from_booking(booking)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking",
    responses=_WRITE_RESPONSES,
)
async def cancel_booking(
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking = await service.cancel_booking(booking_id)
    logger.info(f"Booking {booking_id} cancelled via API")
    return BookingResponse.from_booking(booking)
