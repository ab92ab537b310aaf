import re
from datetime import date
from typing import List, NamedTuple

from services.errors import ValidationError

_HOUR_ONLY = re.compile(r"^\d{1,2}$")
_HOUR_MINUTE = re.compile(r"^(\d{1,2}):(\d{2})$")


class Slot(NamedTuple):
    start_time: str
    end_time: str


def format_hour(hour: int) -> str:
    return f"{hour:02d}:00"


def generate_slots(operating_start_hour: int, operating_end_hour: int) -> List[Slot]:
    """
    Fixed daily grid of one-hour slots, e.g. 6..22 -> 06:00-07:00 ... 21:00-22:00.
    """
    if not (0 <= operating_start_hour < operating_end_hour <= 24):
        raise ValidationError("Invalid operating window")
    return [
        Slot(format_hour(hour), format_hour(hour + 1))
        for hour in range(operating_start_hour, operating_end_hour)
    ]


def _parse_hour(value) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid slot: {value!r}")
    if isinstance(value, int):
        hour = value
    elif isinstance(value, str):
        raw = value.strip()
        match = _HOUR_MINUTE.match(raw)
        if match:
            if match.group(2) != "00":
                raise ValidationError(f"Slots must start on the hour: {value!r}")
            hour = int(match.group(1))
        elif _HOUR_ONLY.match(raw):
            hour = int(raw)
        else:
            raise ValidationError(f"Invalid slot: {value!r}")
    else:
        raise ValidationError(f"Invalid slot: {value!r}")

    if not 0 <= hour <= 24:
        raise ValidationError(f"Invalid slot hour: {value!r}")
    return hour


def normalize_slot(raw) -> Slot:
    # {"startTime": "09:00", "endTime": "10:00"} or the snake_case variant
    if isinstance(raw, dict):
        start = raw.get("startTime", raw.get("start_time"))
        end = raw.get("endTime", raw.get("end_time"))
        if start is None:
            raise ValidationError("Slot startTime is required")
        start_hour = _parse_hour(start)
        end_hour = _parse_hour(end) if end is not None else start_hour + 1
    else:
        # bare hour: "09", "9", 9, "09:00"
        start_hour = _parse_hour(raw)
        end_hour = start_hour + 1

    if end_hour != start_hour + 1 or end_hour > 24:
        raise ValidationError("Each slot must span exactly one hour")
    return Slot(format_hour(start_hour), format_hour(end_hour))


def normalize_slots(raw_slots) -> List[Slot]:
    if not isinstance(raw_slots, (list, tuple)) or not raw_slots:
        raise ValidationError("At least one slot is required")

    slots = [normalize_slot(raw) for raw in raw_slots]
    if len({s.start_time for s in slots}) != len(slots):
        raise ValidationError("Duplicate slots in request")
    return sorted(slots)


def parse_date(value) -> date:
    """"2026-01-20" (or a full ISO timestamp) -> date."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Invalid date. Use YYYY-MM-DD")
    raw = value.strip()
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        raise ValidationError("Invalid date. Use YYYY-MM-DD")


def as_id(value, name: str) -> int:
    if isinstance(value, bool) or value in (None, ""):
        raise ValidationError(f"{name} must be an integer id")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer id")
