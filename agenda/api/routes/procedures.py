"""Procedure totals endpoint."""

from fastapi import APIRouter, Depends
from pydantic import Field

from agenda.api.dependencies import get_availability_service
from agenda.api.schemas import CamelModel, IdStr, LegacyProcedureModel
from agenda.core.scheduling.availability import AvailabilityService

router = APIRouter(prefix="/procedures", tags=["Procedures"])


class ProcedureTotalsRequest(LegacyProcedureModel):
    procedure_ids: list[IdStr] = Field(..., alias="procedureIds")


class ProcedureTotalsResponse(CamelModel):
    procedure_ids: list[str] = Field(..., alias="procedureIds")
    total_duration_minutes: int = Field(..., alias="totalDurationMinutes")
    total_price: str = Field(
        ...,
        alias="totalPrice",
        description="Exact decimal sum, e.g. \"250.00\"",
    )


@router.post("/totals", response_model=ProcedureTotalsResponse, summary="Aggregate procedures")
async def procedure_totals(
    request: ProcedureTotalsRequest,
    service: AvailabilityService = Depends(get_availability_service),
) -> ProcedureTotalsResponse:
    """Total duration and price for a procedure selection."""
    totals = await service.get_procedure_totals(request.procedure_ids)
    return ProcedureTotalsResponse(
        procedure_ids=totals.procedure_ids,
        total_duration_minutes=totals.total_duration_minutes,
        total_price=str(totals.total_price),
    )
