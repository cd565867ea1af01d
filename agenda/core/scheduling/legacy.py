"""
Compatibility with the single-procedure booking payload.

Older clients and the legacy bookings column know one `procedureId` per
booking. The core works with ordered procedure lists; these helpers convert
at the HTTP and storage boundary so the old shape never leaks inward.
"""

from typing import Any, Iterable, Optional

from agenda.core.scheduling.models import Booking


def legacy_procedure_id(procedure_ids: Iterable[str]) -> Optional[str]:
    """Value for the legacy single-procedure column: the first procedure."""
    for procedure_id in procedure_ids:
        return procedure_id
    return None


def from_legacy_payload(payload: Any) -> Any:
    """Accept `procedureId` where `procedureIds` is expected.

    Returns a new dict; a payload that already carries procedureIds keeps
    them and the legacy field is dropped.
    """
    if not isinstance(payload, dict):
        return payload

    data = dict(payload)
    legacy = data.pop("procedureId", None)
    if data.get("procedureIds") is None and legacy not in (None, "", 0):
        data["procedureIds"] = [legacy]
    return data


def to_legacy_payload(booking: Booking) -> dict:
    """Wire representation understood by both current and legacy clients."""
    return {
        "id": booking.id,
        "patientId": booking.patient_id,
        "providerId": booking.provider_id,
        "procedureIds": list(booking.procedure_ids),
        "procedureId": legacy_procedure_id(booking.procedure_ids),
        "startTime": booking.start_time,
        "endTime": booking.end_time,
        "durationMinutes": booking.duration_minutes,
        "status": booking.status.value,
        "notes": booking.notes,
    }
