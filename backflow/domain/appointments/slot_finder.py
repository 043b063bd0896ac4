"""
Scheduling arithmetic for appointments

Pure functions only: callers load appointments from the database and pass
them in, which keeps the slot search and conflict rules testable without a
session.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Sequence

from ...shared.dates import format_time_label

SLOT_MINUTES = 60
DEFAULT_DURATION = 60
MAX_APPOINTMENTS_PER_DAY = 8
SEARCH_DAYS = 30
TRAVEL_BUFFER_MINUTES = 15

_AMPM_RE = re.compile(r"^(\d{1,2}):(00|30)\s*(AM|PM)$", re.IGNORECASE)
_CLOCK_RE = re.compile(r"^(\d{2}):(\d{2})(?::(\d{2}))?$")


@dataclass(frozen=True)
class BookedSlot:
    """The parts of an appointment the slot math needs"""

    scheduled_date: date
    scheduled_time: str
    estimated_duration: Optional[int] = None
    id: Optional[int] = None

    @classmethod
    def from_appointment(cls, appointment) -> "BookedSlot":
        return cls(
            scheduled_date=appointment.scheduled_date,
            scheduled_time=appointment.scheduled_time,
            estimated_duration=appointment.estimated_duration,
            id=appointment.id,
        )


@dataclass(frozen=True)
class SlotSuggestion:
    date: date
    time: str
    label: str
    days_out: int
    matches_preference: bool
    weight: int

    def as_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "time": self.time,
            "label": self.label,
            "days_out": self.days_out,
            "matches_preference": self.matches_preference,
        }


def parse_time(value: str) -> str:
    """
    Normalize a booking time to ``HH:MM:SS``.

    Accepts ``9:30 AM`` (minutes 00 or 30), ``14:00:00`` or ``14:00``.
    Raises ValueError for anything else.
    """
    value = (value or "").strip()
    match = _AMPM_RE.match(value)
    if match:
        hour, minute, meridiem = int(match.group(1)), match.group(2), match.group(3).upper()
        if not 1 <= hour <= 12:
            raise ValueError(f"Invalid time: {value}")
        if meridiem == "PM" and hour != 12:
            hour += 12
        elif meridiem == "AM" and hour == 12:
            hour = 0
        return f"{hour:02d}:{minute}:00"

    match = _CLOCK_RE.match(value)
    if match:
        hour, minute, second = int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)
        if hour > 23 or minute > 59 or second > 59:
            raise ValueError(f"Invalid time: {value}")
        return f"{hour:02d}:{minute:02d}:{second:02d}"

    raise ValueError(f"Invalid time format: {value}. Use H:MM AM/PM or HH:MM")


def to_minutes(value: str) -> int:
    hour, minute = (int(p) for p in value.split(":")[:2])
    return hour * 60 + minute


def slot_datetime(day: date, value: str) -> datetime:
    hour, minute, *rest = (int(p) for p in value.split(":"))
    return datetime.combine(day, time(hour, minute, rest[0] if rest else 0))


def overlaps(start: int, duration: int, other_start: int, other_duration: Optional[int]) -> bool:
    end = start + duration
    other_end = other_start + (other_duration or DEFAULT_DURATION)
    return start < other_end and end > other_start


def has_conflict(
    day: date,
    start_time: str,
    booked: Iterable[BookedSlot],
    duration: int = SLOT_MINUTES,
    exclude_id: Optional[int] = None,
) -> bool:
    """True when ``start_time`` for ``duration`` minutes overlaps any booking on ``day``"""
    start = to_minutes(start_time)
    for slot in booked:
        if slot.scheduled_date != day or (exclude_id is not None and slot.id == exclude_id):
            continue
        if overlaps(start, duration, to_minutes(slot.scheduled_time), slot.estimated_duration):
            return True
    return False


def weighted_slots(priority: str = "medium") -> list[tuple[str, int]]:
    """Candidate start times, best first; urgent work is steered to the morning"""
    high = priority == "high"
    slots = [
        ("09:00:00", 3 if high else 1),
        ("10:00:00", 2),
        ("11:00:00", 2),
        ("13:00:00", 1),
        ("14:00:00", 2),
        ("15:00:00", 1 if high else 3),
        ("16:00:00", 1),
    ]
    return sorted(slots, key=lambda s: s[1], reverse=True)


def matches_preference(slot_time: str, preferences: Optional[Sequence[str]]) -> bool:
    if not preferences:
        return True
    return any(pref in slot_time for pref in preferences)


def find_next_available(
    today: date,
    booked: Sequence[BookedSlot],
    preferences: Optional[Sequence[str]] = None,
    priority: str = "medium",
    search_days: int = SEARCH_DAYS,
) -> Optional[SlotSuggestion]:
    """
    First free weekday slot starting tomorrow.

    Days already holding MAX_APPOINTMENTS_PER_DAY bookings are skipped.
    ``booked`` should exclude cancelled appointments.
    """
    by_day: dict[date, list[BookedSlot]] = {}
    for slot in booked:
        by_day.setdefault(slot.scheduled_date, []).append(slot)

    candidates = weighted_slots(priority)
    for offset in range(search_days):
        day = today + timedelta(days=offset + 1)
        if day.weekday() >= 5:
            continue
        day_bookings = by_day.get(day, [])
        if len(day_bookings) >= MAX_APPOINTMENTS_PER_DAY:
            continue
        for slot_time, weight in candidates:
            if not has_conflict(day, slot_time, day_bookings):
                return SlotSuggestion(
                    date=day,
                    time=slot_time,
                    label=format_time_label(slot_time),
                    days_out=offset + 1,
                    matches_preference=matches_preference(slot_time, preferences),
                    weight=weight,
                )
    return None


def no_slot_suggestions() -> list[str]:
    return [
        "Check for cancellations",
        "Consider expanding business hours",
        "Add additional service days",
    ]


def within_working_hours(
    day: date,
    start_time: str,
    working_hours: Optional[dict],
    working_days: Optional[Sequence[int]],
    duration: int = SLOT_MINUTES,
) -> bool:
    """The whole visit must fall on a working day between the opening and closing times"""
    if working_days is not None and day.weekday() not in working_days:
        return False
    if not working_hours:
        return True
    start = to_minutes(start_time)
    return to_minutes(working_hours["start"]) <= start and start + duration <= to_minutes(working_hours["end"])


def detect_conflicts(appointments: Sequence[BookedSlot]) -> list[dict]:
    """
    Report overlapping neighbours and over-capacity days.

    Neighbours closer than the travel buffer are flagged ``medium``; a true
    overlap is ``high``.
    """
    conflicts = []
    ordered = sorted(appointments, key=lambda a: (a.scheduled_date, a.scheduled_time))

    for current, following in zip(ordered, ordered[1:]):
        if current.scheduled_date != following.scheduled_date:
            continue
        current_end = to_minutes(current.scheduled_time) + (current.estimated_duration or DEFAULT_DURATION)
        next_start = to_minutes(following.scheduled_time)
        if current_end + TRAVEL_BUFFER_MINUTES > next_start:
            conflicts.append(
                {
                    "type": "overlap",
                    "severity": "high" if current_end > next_start else "medium",
                    "date": current.scheduled_date.isoformat(),
                    "appointment_ids": [current.id, following.id],
                    "overlap_minutes": current_end - next_start,
                }
            )

    per_day: dict[date, int] = {}
    for apt in ordered:
        per_day[apt.scheduled_date] = per_day.get(apt.scheduled_date, 0) + 1
    for day, count in per_day.items():
        if count > MAX_APPOINTMENTS_PER_DAY:
            conflicts.append(
                {
                    "type": "overcapacity",
                    "severity": "high",
                    "date": day.isoformat(),
                    "appointment_count": count,
                    "max_capacity": MAX_APPOINTMENTS_PER_DAY,
                }
            )
    return conflicts
