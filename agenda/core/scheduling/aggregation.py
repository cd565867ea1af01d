"""Duration and price totals for multi-procedure bookings."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from agenda.core.scheduling.errors import InvalidProcedureError, ValidationError
from agenda.core.scheduling.models import Procedure


@dataclass(frozen=True)
class ProcedureTotals:
    """Aggregate of the procedures selected for one booking."""

    procedure_ids: list[str]
    total_duration_minutes: int
    total_price: Decimal

    def to_dict(self) -> dict:
        return {
            "procedure_ids": list(self.procedure_ids),
            "total_duration_minutes": self.total_duration_minutes,
            "total_price": str(self.total_price),
        }


def normalize_procedure_ids(procedure_ids: Iterable) -> list[str]:
    """De-duplicate ids keeping first-seen order; drop blanks and zeros."""
    seen: dict[str, None] = {}
    for raw in procedure_ids:
        if raw is None:
            continue
        value = str(raw).strip()
        if not value or value == "0":
            continue
        seen.setdefault(value, None)
    return list(seen)


def aggregate_procedures(
    procedure_ids: Iterable,
    catalog: Mapping[str, Procedure],
) -> ProcedureTotals:
    """Sum durations and prices for a procedure selection.

    Prices are summed as Decimal so 100.10 + 0.20 is exactly 100.30.

    Raises:
        ValidationError: No procedure selected
        InvalidProcedureError: An id is missing from the catalog
    """
    ids = normalize_procedure_ids(procedure_ids)
    if not ids:
        raise ValidationError("At least one procedure is required", field="procedureIds")

    missing = [pid for pid in ids if pid not in catalog]
    if missing:
        raise InvalidProcedureError(missing)

    total_minutes = sum(catalog[pid].duration_minutes for pid in ids)
    total_price = sum((catalog[pid].price for pid in ids), Decimal("0"))

    if total_minutes <= 0:
        raise ValidationError("Selected procedures have no duration", field="procedureIds")

    return ProcedureTotals(
        procedure_ids=ids,
        total_duration_minutes=total_minutes,
        total_price=total_price,
    )
