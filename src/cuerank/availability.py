"""
Play-window lock for scheduled match slots.

A slot scheduled for day D may be played from ``open_hour`` local time on D
until ``open_hour`` local time on D+1. All comparisons happen in the match's
own timezone, never the machine's.

    >>> from datetime import date, datetime, timezone
    >>> is_locked(date(2026, 3, 10), "America/Chicago",
    ...           datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc))
    LockVerdict(locked=False, reason=None)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cuerank.config import settings


@dataclass(frozen=True)
class LockVerdict:
    locked: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {"locked": self.locked, "reason": self.reason}


UNLOCKED = LockVerdict(locked=False)


def _format_hour(hour: int) -> str:
    suffix = "AM" if hour < 12 else "PM"
    display = hour % 12 or 12
    return f"{display}:00 {suffix}"


def play_window(
    scheduled_date: date,
    timezone_name: str,
    open_hour: int | None = None,
) -> tuple[datetime, datetime]:
    """Return the (start, end) instants of a day's play window, tz-aware."""
    if open_hour is None:
        open_hour = settings.window_open_hour
    tz = ZoneInfo(timezone_name)
    start = datetime.combine(scheduled_date, time(hour=open_hour), tzinfo=tz)
    end = datetime.combine(scheduled_date + timedelta(days=1), time(hour=open_hour), tzinfo=tz)
    return start, end


def is_locked(
    scheduled_date: date | None,
    timezone_name: str | None,
    now: datetime,
    open_hour: int | None = None,
) -> LockVerdict:
    """
    Decide whether a slot scheduled for ``scheduled_date`` is locked at ``now``.

    Args:
        scheduled_date: Calendar day the slot is scheduled for, or None for
                        ad-hoc play (always unlocked).
        timezone_name: IANA timezone of the match. Falls back to
                       settings.default_timezone when empty.
        now: Current instant. Must be timezone-aware.
        open_hour: Local hour the window opens. Defaults to
                   settings.window_open_hour.

    Returns:
        LockVerdict with a human-readable reason when locked.

    Raises:
        ValueError: If ``now`` is naive or the timezone is unknown.
    """
    if scheduled_date is None:
        return UNLOCKED
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError("now must be timezone-aware")

    if open_hour is None:
        open_hour = settings.window_open_hour
    tz_name = timezone_name or settings.default_timezone
    try:
        start, end = play_window(scheduled_date, tz_name, open_hour)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Unknown timezone: {tz_name}") from exc

    local_now = now.astimezone(start.tzinfo)
    opens_at = _format_hour(open_hour)

    if local_now < start:
        if local_now.date() == scheduled_date:
            return LockVerdict(True, f"Match starts at {opens_at} ({tz_name}).")
        return LockVerdict(
            True,
            f"Match starts on {scheduled_date.isoformat()} at {opens_at} ({tz_name}).",
        )

    if local_now < end:
        return UNLOCKED

    if local_now.date() == end.date():
        return LockVerdict(True, f"Match window ended today at {opens_at} ({tz_name}).")
    return LockVerdict(True, "Match window expired.")
