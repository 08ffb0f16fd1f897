"""
Small helpers shared by the forum modules.
"""

import math
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def naive_utc(value: datetime | None) -> datetime | None:
    """Convert an aware datetime to naive UTC; naive values are taken as UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def start_of_utc_day(moment: datetime | None = None) -> datetime:
    """Midnight UTC of the given (or current) day."""
    moment = moment or utcnow()
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, like most UIs expect."""
    return int(math.floor(value + 0.5))


def percentage(part: int | float, whole: int | float) -> int:
    """Whole-number percentage of `part` in `whole`, capped at 100."""
    if whole <= 0:
        return 0
    return max(0, min(100, round_half_up(part / whole * 100)))


def pagination_meta(page: int, limit: int, total: int) -> dict[str, int]:
    """Standard pagination block returned with list responses."""
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


def offset_for(page: int, limit: int) -> int:
    """Row offset for a 1-based page."""
    return max(page - 1, 0) * limit


def truncate(text: str | None, length: int) -> str:
    """Cut text to `length` characters, adding an ellipsis when cut."""
    if not text:
        return ""
    if len(text) <= length:
        return text
    return text[:length] + "..."


def isoformat(value: datetime | None) -> str | None:
    """ISO string for optional datetimes."""
    return value.isoformat() if value else None


def compact(data: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is None."""
    return {key: value for key, value in data.items() if value is not None}
