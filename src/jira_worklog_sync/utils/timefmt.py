"""Timestamp and duration helpers.

Two textual timestamp forms are in play:

* the wire form Jira accepts and returns, ``2024-03-01T09:00:00.000-0500``
  (millisecond precision, numeric offset without a colon);
* the stored form kept in the ledger, ISO 8601 with the local offset,
  ``2024-03-01T09:00:00-05:00``.
"""

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from jira_worklog_sync.errors import InvalidTimestamp

WIRE_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"

_DURATION_PATTERN = re.compile(
    r"^\s*(?:(?P<hours>\d+)\s*h)?\s*(?:(?P<minutes>\d+)\s*m)?\s*(?:(?P<seconds>\d+)\s*s)?\s*$",
    re.IGNORECASE,
)


def format_wire(value: datetime) -> str:
    """Format an aware datetime the way the Jira API expects it.

    Args:
        value: Timezone-aware datetime.

    Returns:
        Timestamp such as ``2024-03-01T09:00:00.000-0500``.

    Raises:
        InvalidTimestamp: If the datetime carries no offset.
    """
    if value.tzinfo is None or value.utcoffset() is None:
        raise InvalidTimestamp(f"Timestamp '{value.isoformat()}' has no UTC offset")
    millis = value.microsecond // 1000
    return f"{value.strftime('%Y-%m-%dT%H:%M:%S')}.{millis:03d}{value.strftime('%z')}"


def parse_wire(value: str) -> datetime:
    """Parse a timestamp in Jira wire format.

    Raises:
        InvalidTimestamp: If the value does not match the wire format.
    """
    for fmt in (WIRE_FORMAT, "%Y-%m-%dT%H:%M:%S%z"):
        try:
            return datetime.strptime(value, fmt)
        except (TypeError, ValueError):
            continue
    raise InvalidTimestamp(f"Invalid Jira timestamp '{value}'")


def parse_stored(value: str) -> datetime:
    """Parse a stored ISO 8601 timestamp that must carry a UTC offset.

    Raises:
        InvalidTimestamp: If the value is not ISO 8601 or has no offset.
    """
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise InvalidTimestamp(f"Invalid date '{value}': {e}") from e
    if parsed.tzinfo is None:
        raise InvalidTimestamp(f"Invalid date '{value}': missing UTC offset")
    return parsed


def to_stored(value: datetime) -> str:
    """Render an aware datetime in the stored ISO 8601 form (second precision)."""
    return value.isoformat(timespec="seconds")


def now_local(tz: tzinfo | None = None) -> datetime:
    """Current instant in ``tz``, or in the system local zone when omitted."""
    if tz is None:
        return datetime.now().astimezone()
    return datetime.now(tz)


def to_local(value: datetime, tz: tzinfo | None = None) -> datetime:
    """Convert an aware datetime to ``tz``, or to the system local zone.

    Without ``tz`` the system zone rules apply to the instant itself, so a
    winter timestamp gets the winter offset even when converted in summer.
    """
    if tz is None:
        return value.astimezone()
    return value.astimezone(tz)


def utcnow_iso() -> str:
    """Current UTC instant as stored in created/updated columns."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def day_bounds(day: date) -> tuple[str, str]:
    """Stored-form string bounds covering one local calendar day.

    The lower bound is inclusive and the upper bound exclusive, so every
    stored value whose wall-clock date is ``day`` falls in between.
    """
    start = f"{day.isoformat()}T00:00:00"
    end = f"{(day + timedelta(days=1)).isoformat()}T00:00:00"
    return start, end


def start_of_day(day: date, tz: tzinfo | None = None) -> datetime:
    """Local midnight of ``day`` in ``tz``, or in the system local zone."""
    if tz is None:
        return datetime.combine(day, time.min).astimezone()
    return datetime.combine(day, time.min, tzinfo=tz)


def epoch_millis(value: datetime) -> int:
    """Milliseconds since the Unix epoch for an aware datetime."""
    return int(value.timestamp() * 1000)


def parse_duration(value: str) -> int:
    """Parse a human duration into seconds.

    Accepts plain seconds (``"3600"``) or unit strings such as ``"1h 30m"``,
    ``"45m"`` or ``"90s"``.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    text = value.strip()
    if text.isdigit():
        return int(text)

    match = _DURATION_PATTERN.match(text)
    if not text or not match or not any(match.groupdict().values()):
        raise ValueError(f"Invalid duration '{value}'. Use e.g. 1h 30m, 45m or 3600")

    hours = int(match.group("hours") or 0)
    minutes = int(match.group("minutes") or 0)
    seconds = int(match.group("seconds") or 0)
    return hours * 3600 + minutes * 60 + seconds


def format_duration(total_seconds: int) -> str:
    """Format seconds as ``"1h 30m"`` or ``"45m"``."""
    hours, remainder = divmod(max(total_seconds, 0), 3600)
    minutes = remainder // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
