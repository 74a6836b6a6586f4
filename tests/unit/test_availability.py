"""Unit tests for the play-window lock."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from cuerank.availability import UNLOCKED, is_locked, play_window

CHICAGO = "America/Chicago"
TZ = ZoneInfo(CHICAGO)
DAY = date(2026, 3, 10)


def test_no_scheduled_date_is_always_unlocked():
    assert is_locked(None, CHICAGO, datetime(2026, 1, 1, tzinfo=timezone.utc)) == UNLOCKED


def test_open_instant_is_unlocked():
    verdict = is_locked(DAY, CHICAGO, datetime(2026, 3, 10, 8, 0, 0, tzinfo=TZ))
    assert verdict.locked is False
    assert verdict.reason is None


def test_one_second_before_open_is_locked():
    verdict = is_locked(DAY, CHICAGO, datetime(2026, 3, 10, 7, 59, 59, tzinfo=TZ))
    assert verdict.locked is True
    assert verdict.reason == "Match starts at 8:00 AM (America/Chicago)."


def test_day_before_reports_date():
    verdict = is_locked(DAY, CHICAGO, datetime(2026, 3, 9, 20, 0, tzinfo=TZ))
    assert verdict.locked
    assert verdict.reason == "Match starts on 2026-03-10 at 8:00 AM (America/Chicago)."


def test_window_spans_into_next_morning():
    assert not is_locked(DAY, CHICAGO, datetime(2026, 3, 10, 23, 30, tzinfo=TZ)).locked
    assert not is_locked(DAY, CHICAGO, datetime(2026, 3, 11, 7, 59, 59, tzinfo=TZ)).locked


def test_window_closes_at_next_open():
    verdict = is_locked(DAY, CHICAGO, datetime(2026, 3, 11, 8, 0, tzinfo=TZ))
    assert verdict.locked
    assert verdict.reason == "Match window ended today at 8:00 AM (America/Chicago)."


def test_window_expired_after_following_day():
    verdict = is_locked(DAY, CHICAGO, datetime(2026, 3, 12, 9, 0, tzinfo=TZ))
    assert verdict.locked
    assert verdict.reason == "Match window expired."


def test_comparison_happens_in_match_timezone():
    # 8:00 CDT on 2026-03-10 is 13:00 UTC (DST began 2026-03-08)
    open_utc = datetime(2026, 3, 10, 13, 0, tzinfo=timezone.utc)
    assert not is_locked(DAY, CHICAGO, open_utc).locked
    assert is_locked(DAY, CHICAGO, open_utc - timedelta(seconds=1)).locked


def test_same_instant_differs_by_timezone():
    instant = datetime(2026, 3, 10, 10, 0, tzinfo=timezone.utc)
    # 11:00 in Berlin: open. 05:00 in Chicago: not yet.
    assert not is_locked(DAY, "Europe/Berlin", instant).locked
    assert is_locked(DAY, CHICAGO, instant).locked


def test_missing_timezone_falls_back_to_default():
    verdict = is_locked(DAY, None, datetime(2026, 3, 10, 7, 0, tzinfo=TZ))
    assert verdict.reason == "Match starts at 8:00 AM (America/Chicago)."


def test_custom_open_hour():
    verdict = is_locked(DAY, CHICAGO, datetime(2026, 3, 10, 17, 0, tzinfo=TZ), open_hour=18)
    assert verdict.reason == "Match starts at 6:00 PM (America/Chicago)."


def test_play_window_is_tz_aware():
    start, end = play_window(DAY, CHICAGO, open_hour=8)
    assert start.tzinfo is not None
    assert start == datetime(2026, 3, 10, 8, tzinfo=TZ)
    assert end == datetime(2026, 3, 11, 8, tzinfo=TZ)


def test_naive_now_rejected():
    with pytest.raises(ValueError):
        is_locked(DAY, CHICAGO, datetime(2026, 3, 10, 9, 0))


def test_unknown_timezone_rejected():
    with pytest.raises(ValueError):
        is_locked(DAY, "Mars/Olympus_Mons", datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc))


def test_verdict_to_dict():
    verdict = is_locked(DAY, CHICAGO, datetime(2026, 3, 12, 9, 0, tzinfo=TZ))
    assert verdict.to_dict() == {"locked": True, "reason": "Match window expired."}
