from datetime import datetime, timedelta, timezone

import pytest

from allyhub.core.time_utils import (
    ensure_aware_utc,
    epoch_ms,
    hours_since,
    is_within_sync_window,
    isoformat_utc,
    parse_utc,
    sync_window_start,
)

UTC = timezone.utc


def test_parse_utc_iso_and_game_formats():
    expected = datetime(2026, 10, 18, 14, 5, 9, tzinfo=UTC)
    assert parse_utc("2026-10-18T14:05:09Z") == expected
    assert parse_utc("18.10.2026 14:05:09") == expected
    assert parse_utc("18.10.26 14:05:09") == expected
    assert parse_utc("2026-10-18 14:05:09") == expected


def test_parse_utc_blank_and_invalid():
    assert parse_utc(None) is None
    assert parse_utc("   ") is None
    with pytest.raises(ValueError):
        parse_utc("yesterday at noon")


def test_parse_utc_converts_offsets():
    assert parse_utc("2026-10-18T16:00:00+02:00") == datetime(2026, 10, 18, 14, 0, tzinfo=UTC)


def test_naive_datetimes_are_taken_as_utc():
    naive = datetime(2026, 1, 1, 8, 30)
    assert ensure_aware_utc(naive) == datetime(2026, 1, 1, 8, 30, tzinfo=UTC)
    assert isoformat_utc(naive) == "2026-01-01T08:30:00Z"


def test_epoch_ms_truncates_to_whole_seconds():
    dt = datetime(1970, 1, 1, 0, 0, 2, 750000, tzinfo=UTC)
    assert epoch_ms(dt) == 2000
    assert epoch_ms(None) == 0


@pytest.mark.parametrize(
    "hour,bucket",
    [(0, 0), (5, 0), (6, 6), (11, 6), (12, 12), (17, 12), (18, 18), (23, 18)],
)
def test_sync_window_aligns_to_six_hour_buckets(hour, bucket):
    now = datetime(2026, 10, 18, hour, 42, 13, tzinfo=UTC)
    assert sync_window_start(now) == datetime(2026, 10, 18, bucket, 0, tzinfo=UTC)


def test_sync_window_membership_is_not_rolling():
    now = datetime(2026, 10, 18, 12, 5, tzinfo=UTC)
    # Ten minutes ago, but in the previous bucket
    assert not is_within_sync_window(now - timedelta(minutes=10), now)
    assert is_within_sync_window(datetime(2026, 10, 18, 12, 0, tzinfo=UTC), now)
    assert not is_within_sync_window(None, now)


def test_hours_since_truncates():
    now = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)
    assert hours_since(now - timedelta(hours=5, minutes=59), now) == 5
    assert hours_since(None, now) is None
