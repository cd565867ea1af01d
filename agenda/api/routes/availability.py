"""
Availability API Endpoint.

Answers whether a provider is free for a procedure selection. Used by the
booking form's debounced validation and by drag-and-drop rescheduling.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import AwareDatetime, Field

from agenda.api.dependencies import get_availability_service
from agenda.api.schemas import CamelModel, ErrorResponse, IdStr, LegacyProcedureModel
from agenda.core.scheduling.availability import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["Availability"])


class AvailabilityCheckRequest(LegacyProcedureModel):
    """Availability check request."""

    provider_id: IdStr = Field(
        ...,
        alias="providerId",
        description="Provider whose schedule is checked",
    )
    start_time: AwareDatetime = Field(
        ...,
        alias="startTime",
        description="Proposed start as an ISO-8601 instant with offset",
        examples=["2026-03-02T10:00:00-03:00"],
    )
    procedure_ids: list[IdStr] = Field(
        ...,
        alias="procedureIds",
        description="Procedures making up the booking, in order",
    )
    exclude_booking_id: Optional[IdStr] = Field(
        default=None,
        alias="excludeBookingId",
        description="Booking being edited or moved; ignored by the check",
    )


class AvailabilityCheckResponse(CamelModel):
    """Availability check response."""

    available: bool
    conflict_message: Optional[str] = Field(default=None, alias="conflictMessage")


@router.post(
    "/check",
    response_model=AvailabilityCheckResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Check slot availability",
    responses={
        422: {"model": ErrorResponse, "description": "Invalid input or unknown procedure"},
        503: {"model": ErrorResponse, "description": "Availability could not be verified"},
    },
)
async def check_availability(
    request: AvailabilityCheckRequest,
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityCheckResponse:
    """
    Check whether the slot is free.

    Fails closed: if bookings cannot be loaded the response is 503, never
    "available".
    """
    result = await service.check_availability(
        provider_id=request.provider_id,
        start_time=request.start_time,
        procedure_ids=request.procedure_ids,
        exclude_booking_id=request.exclude_booking_id,
    )
    return AvailabilityCheckResponse.model_validate(result.to_response())
