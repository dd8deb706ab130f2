"""
Cadence validation and next-fire calculation.

Accepted forms:
    "0 9 * * 1-5"        5 fields: minute hour day month weekday
    "*/15 * * * * *"     6 fields: second minute hour day month weekday

croniter expects the seconds field LAST, so 6-field cadences are rotated
before they reach it.
"""

from __future__ import annotations

from datetime import datetime

from croniter import croniter

MINUTE_FIELDS = 5
SECOND_FIELDS = 6


def _to_croniter(cadence: str) -> str:
    fields = cadence.split()
    if len(fields) == SECOND_FIELDS:
        fields = fields[1:] + fields[:1]
    return " ".join(fields)


def validate_cadence(cadence: object) -> bool:
    """True if `cadence` is a well-formed 5- or 6-field cron expression."""
    if not isinstance(cadence, str):
        return False
    if len(cadence.split()) not in (MINUTE_FIELDS, SECOND_FIELDS):
        return False
    try:
        return bool(croniter.is_valid(_to_croniter(cadence)))
    except Exception:
        return False


def next_fire_time(cadence: str, after: datetime) -> datetime:
    """
    First time strictly after `after` that matches `cadence`.

    The result carries `after`'s tzinfo, so pass an aware datetime to get
    cadences evaluated in that timezone.

    Raises:
        ValueError: if the cadence is not valid
    """
    if not validate_cadence(cadence):
        raise ValueError(f"Invalid cadence: {cadence!r}")
    it = croniter(_to_croniter(cadence), after)
    return it.get_next(datetime)
