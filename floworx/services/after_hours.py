"""
Business-hours resolution and evaluation helpers.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger("after_hours")

DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _hhmm(value: str) -> int:
    """'09:30' -> 930. Raises ValueError on malformed input."""
    parsed = datetime.strptime(str(value), "%H:%M")
    return parsed.hour * 100 + parsed.minute


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r in business hours; using UTC", name)
        return ZoneInfo("UTC")


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def is_after_hours(now: datetime, business_hours: Optional[dict]) -> bool:
    """
    True when `now` falls outside the stored business hours.

    A missing configuration means "always open". A day that is missing from
    the schedule or marked closed counts as after hours all day. Otherwise
    the local time is compared against start/end as HHMM integers: before
    start or after end is after hours, so the end minute itself is still open.
    """
    if not business_hours or not business_hours.get("schedule"):
        return False
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(resolve_timezone(business_hours.get("timezone")))
    today = business_hours["schedule"].get(DAY_NAMES[local.weekday()])
    if not today or not today.get("open"):
        return True
    current = local.hour * 100 + local.minute
    start = _hhmm(today["start"])
    end = _hhmm(today["end"])
    return current < start or current > end
