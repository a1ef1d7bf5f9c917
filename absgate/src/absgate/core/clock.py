"""
Time Provider

Every time-sensitive component (guards, sequence windows, trust decay,
session timeouts, token expiry) reads the clock through a TimeProvider so
tests can pin or advance time without sleeping.

Wire timestamps are ISO-8601 UTC with millisecond precision and a 'Z'
suffix, e.g. ``2026-01-01T12:00:00.000Z``.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as an ISO-8601 UTC string with millisecond precision."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts both the 'Z' suffix and explicit offsets. Naive values are
    treated as UTC.

    Raises:
        ValueError: if the string is not a valid ISO-8601 timestamp
    """
    if isinstance(value, datetime):
        dt = value
    else:
        text = value.strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def elapsed_ms(start: datetime, end: datetime) -> float:
    """Milliseconds between two datetimes (negative if end precedes start)."""
    return (end - start).total_seconds() * 1000


class TimeProvider:
    """
    Clock abstraction with an optional mock time for tests.
    """

    def __init__(self, mock_time: Optional[datetime] = None):
        self._mock_time: Optional[datetime] = None
        if mock_time is not None:
            self.set_mock_time(mock_time)

    def now(self) -> datetime:
        """Current UTC time (mock time if one is set)."""
        if self._mock_time is not None:
            return self._mock_time
        return datetime.now(timezone.utc)

    def now_iso(self) -> str:
        return format_timestamp(self.now())

    def set_mock_time(self, value: Optional[datetime]) -> None:
        """Pin the clock to a fixed instant, or pass None to use the real clock."""
        self._mock_time = parse_timestamp(value) if value is not None else None

    def advance(self, delta: timedelta) -> datetime:
        """
        Move the clock forward by ``delta``.

        If no mock time is set, the clock is pinned to the current real time
        first.
        """
        self._mock_time = self.now() + delta
        return self._mock_time

    @property
    def is_mocked(self) -> bool:
        return self._mock_time is not None

    def calculate_skew_ms(self, timestamp: Union[str, datetime]) -> float:
        """Signed skew: positive when ``timestamp`` is in the past."""
        return elapsed_ms(parse_timestamp(timestamp), self.now())

    def is_within_skew(self, timestamp: Union[str, datetime], max_skew_ms: float) -> bool:
        return abs(self.calculate_skew_ms(timestamp)) <= max_skew_ms

    def valid_until(self, ttl_seconds: float = 300) -> str:
        """Expiry timestamp ``ttl_seconds`` from now."""
        return format_timestamp(self.now() + timedelta(seconds=ttl_seconds))

    def is_expired(self, valid_until: Union[str, datetime]) -> bool:
        return self.now() > parse_timestamp(valid_until)


# Default provider shared by components that are not given one explicitly
time_provider = TimeProvider()
