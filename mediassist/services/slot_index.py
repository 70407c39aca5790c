"""
Fixed-width appointment slots for one doctor on one date.

Slots are derived from the working window and the granularity, never stored.
Availability is recomputed from the current reservations on every call.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple
import math

from ..core.errors import MalformedRequest

PAST = "past"
BOOKED = "booked"


@dataclass(frozen=True)
class AppointmentSlot:
    doctor_id: int
    date: date
    start: datetime
    duration_minutes: int

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    @property
    def label(self) -> str:
        return self.start.strftime("%H:%M")


@dataclass(frozen=True)
class SlotAvailability:
    slot: AppointmentSlot
    available: bool
    reason: Optional[str] = None


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap: [a_start, a_end) and [b_start, b_end) share time."""
    return a_start < b_end and b_start < a_end


def generate_day_slots(
    doctor_id: int,
    day: date,
    work_start: time = time(9, 0),
    work_end: time = time(17, 0),
    granularity: int = 30,
) -> List[AppointmentSlot]:
    if granularity <= 0:
        raise MalformedRequest("Slot granularity must be positive")
    window_start = datetime.combine(day, work_start)
    window_end = datetime.combine(day, work_end)
    if window_end <= window_start:
        raise MalformedRequest("Working day must end after it starts")

    window_minutes = (window_end - window_start).total_seconds() / 60
    count = math.ceil(window_minutes / granularity)
    return [
        AppointmentSlot(
            doctor_id=doctor_id,
            date=day,
            start=window_start + timedelta(minutes=index * granularity),
            duration_minutes=granularity,
        )
        for index in range(count)
    ]


def compute_availability(
    slots: Iterable[AppointmentSlot],
    reservations: Iterable[Tuple[datetime, Optional[int]]],
    now: datetime,
    default_duration: int = 30,
) -> List[SlotAvailability]:
    """Mark each slot booked, past or available.

    ``reservations`` are ``(start, duration_minutes)`` pairs of the bookings
    that occupy time; a missing duration counts as ``default_duration``.
    Booked takes precedence over past.
    """
    intervals = [
        (start, start + timedelta(minutes=duration or default_duration))
        for start, duration in reservations
    ]
    result = []
    for slot in slots:
        if any(intervals_overlap(slot.start, slot.end, start, end) for start, end in intervals):
            result.append(SlotAvailability(slot=slot, available=False, reason=BOOKED))
        elif slot.start <= now:
            result.append(SlotAvailability(slot=slot, available=False, reason=PAST))
        else:
            result.append(SlotAvailability(slot=slot, available=True))
    return result
