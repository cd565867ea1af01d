"""
Calendar grid geometry.

Maps pixel positions on the weekly calendar to (day, time) slots and back.
Purely geometric: holds no state and knows nothing about conflicts.

Layout: one column per displayed day, one row per displayed time slot, rows
start below a header of fixed height.
"""

import bisect
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import NamedTuple, Optional, Sequence
from zoneinfo import ZoneInfo

from agenda.config import settings
from agenda.core.scheduling.models import Booking

# Absorbs float rounding when a position sits exactly on a cell edge
_EDGE_EPSILON = 1e-9


class Point(NamedTuple):
    """Pixel coordinates relative to the grid's top-left corner."""

    x: float
    y: float


@dataclass(frozen=True)
class GridSlot:
    """One cell of the calendar grid."""

    day: date
    time: time


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


class SlotGrid:
    """Bidirectional pixel <-> slot mapping for a displayed week."""

    def __init__(
        self,
        days: Sequence[date],
        time_slots: Sequence[time],
        column_width: float,
        row_height: float,
        header_offset: float = 0.0,
        tz: Optional[tzinfo] = None,
        slot_minutes: Optional[int] = None,
    ):
        """Initialize grid.

        Args:
            days: Displayed days, left to right
            time_slots: Displayed slot start times, top to bottom (ascending)
            column_width: Width of a day column in pixels
            row_height: Height of a time row in pixels
            header_offset: Height of the day header above the first row
            tz: Clinic timezone the grid is drawn in
            slot_minutes: Length of a row (inferred from time_slots if omitted)
        """
        if not days or not time_slots:
            raise ValueError("Grid needs at least one day and one time slot")
        if column_width <= 0 or row_height <= 0:
            raise ValueError("Grid cells must have a positive size")

        self.days = list(days)
        self.time_slots = list(time_slots)
        self.column_width = column_width
        self.row_height = row_height
        self.header_offset = header_offset
        self.tz = tz or ZoneInfo(settings.clinic_timezone)

        if slot_minutes is None:
            if len(self.time_slots) > 1:
                slot_minutes = _minutes(self.time_slots[1]) - _minutes(self.time_slots[0])
            else:
                slot_minutes = settings.grid_slot_minutes
        self.slot_minutes = slot_minutes

        self._day_index = {day: i for i, day in enumerate(self.days)}
        self._slot_minutes_of_day = [_minutes(t) for t in self.time_slots]

    @classmethod
    def weekly(
        cls,
        anchor: date,
        tz: Optional[tzinfo] = None,
        day_start: Optional[time] = None,
        day_end: Optional[time] = None,
        slot_minutes: Optional[int] = None,
        column_width: Optional[float] = None,
        row_height: Optional[float] = None,
        header_offset: Optional[float] = None,
    ) -> "SlotGrid":
        """Monday-to-Sunday grid for the week containing anchor.

        Defaults come from settings: 08:00 to 18:00 in 30 minute rows,
        150px columns, 60px rows, 50px header.
        """
        day_start = day_start or settings.grid_day_start
        day_end = day_end or settings.grid_day_end
        slot_minutes = slot_minutes or settings.grid_slot_minutes

        monday = anchor - timedelta(days=anchor.weekday())
        days = [monday + timedelta(days=i) for i in range(7)]

        slots = []
        minute = _minutes(day_start)
        while minute < _minutes(day_end):
            slots.append(time(minute // 60, minute % 60))
            minute += slot_minutes

        return cls(
            days=days,
            time_slots=slots,
            column_width=column_width or settings.grid_column_width,
            row_height=row_height or settings.grid_row_height,
            header_offset=settings.grid_header_offset if header_offset is None else header_offset,
            tz=tz,
            slot_minutes=slot_minutes,
        )

    def position_to_slot(self, x: float, y: float) -> Optional[GridSlot]:
        """Slot under a pixel position, or None when outside the grid."""
        day_index = math.floor(x / self.column_width + _EDGE_EPSILON)
        slot_index = math.floor((y - self.header_offset) / self.row_height + _EDGE_EPSILON)

        if not 0 <= day_index < len(self.days):
            return None
        if not 0 <= slot_index < len(self.time_slots):
            return None
        return GridSlot(day=self.days[day_index], time=self.time_slots[slot_index])

    def slot_position(self, slot: GridSlot) -> Optional[Point]:
        """Top-left pixel of a slot, or None if it is not displayed."""
        day_index = self._day_index.get(slot.day)
        if day_index is None:
            return None
        try:
            slot_index = self.time_slots.index(slot.time)
        except ValueError:
            return None
        return Point(
            x=day_index * self.column_width,
            y=self.header_offset + slot_index * self.row_height,
        )

    def slot_at(self, instant: datetime) -> Optional[GridSlot]:
        """Displayed slot containing an instant, or None."""
        local = instant.astimezone(self.tz)
        if local.date() not in self._day_index:
            return None

        minute = _minutes(local.time())
        slot_index = bisect.bisect_right(self._slot_minutes_of_day, minute) - 1
        if slot_index < 0:
            return None
        if minute >= self._slot_minutes_of_day[slot_index] + self.slot_minutes:
            return None
        return GridSlot(day=local.date(), time=self.time_slots[slot_index])

    def slot_to_position(self, booking: Booking) -> Optional[Point]:
        """Where a booking is drawn: the top-left of the slot containing its start."""
        slot = self.slot_at(booking.start_time)
        if slot is None:
            return None
        return self.slot_position(slot)

    def slot_start(self, slot: GridSlot) -> datetime:
        """Absolute (UTC) instant at which a slot begins."""
        local = datetime.combine(slot.day, slot.time, tzinfo=self.tz)
        return local.astimezone(timezone.utc)
