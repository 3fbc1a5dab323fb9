"""Timestamp parsing and hour arithmetic shared by the metric derivations."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional

SECONDS_PER_HOUR = 3600


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse GitHub ISO-8601 timestamps into timezone-aware UTC datetimes.

    Empty and malformed values yield ``None``.
    """
    if not value:
        return None

    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as UTC ISO-8601 with a ``Z`` suffix."""
    utc_value = value.astimezone(timezone.utc)
    return utc_value.isoformat().replace("+00:00", "Z")


def round_hours(hours: float) -> float:
    """Round to one decimal place, halves rounding up (``2.25 -> 2.3``)."""
    return math.floor(hours * 10 + 0.5) / 10


def hours_between(start: Optional[str], end: Optional[str]) -> Optional[float]:
    """Return ``end - start`` in hours rounded to one decimal, or ``None``.

    ``None`` is returned whenever either endpoint is missing.
    """
    start_at = parse_timestamp(start)
    end_at = parse_timestamp(end)
    if start_at is None or end_at is None:
        return None

    return round_hours((end_at - start_at).total_seconds() / SECONDS_PER_HOUR)


def is_earlier(candidate: Optional[str], reference: Optional[str]) -> bool:
    """Compare two timestamps as instants rather than as strings."""
    candidate_at = parse_timestamp(candidate)
    reference_at = parse_timestamp(reference)
    if candidate_at is None or reference_at is None:
        return False
    return candidate_at < reference_at


def within_window(value: Optional[str], since: Optional[datetime], until: Optional[datetime]) -> bool:
    """Return whether ``value`` lies in ``[since, until]``; open bounds are ``None``."""
    moment = parse_timestamp(value)
    if moment is None:
        return False
    if since is not None and moment < since:
        return False
    if until is not None and moment > until:
        return False
    return True
