from datetime import date, datetime, timedelta, timezone

import pytest

from planner.core.countdown import format_duration
from planner.core.errors import ConfigInvalid, ProviderUnavailable
from planner.core.time_utils import (
    add_minutes,
    from_iso,
    get_zone,
    local_day_end,
    parse_time_of_day,
    split_time_of_day,
    subtract_minutes,
    to_iso,
)

UTC = timezone.utc


def test_parse_time_of_day_uses_reference_day_when_not_after_reference():
    reference = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)
    assert parse_time_of_day("05:00", "UTC", reference) == datetime(2024, 3, 10, 5, 0, tzinfo=UTC)


def test_parse_time_of_day_falls_back_to_previous_day():
    reference = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)
    assert parse_time_of_day("13:00", "UTC", reference) == datetime(2024, 3, 9, 13, 0, tzinfo=UTC)


def test_parse_time_of_day_reads_wall_clock_in_the_given_zone():
    # 01:00 UTC is 04:00 in Istanbul, before that day's 05:00
    reference = datetime(2024, 3, 10, 1, 0, tzinfo=UTC)
    result = parse_time_of_day("05:00", "Europe/Istanbul", reference)
    assert result == datetime(2024, 3, 9, 2, 0, tzinfo=UTC)


def test_parse_time_of_day_with_day_end_reference_across_dst_change():
    # US clocks moved forward at 02:00 on 2024-03-10
    reference = local_day_end(date(2024, 3, 10), "America/New_York")
    assert parse_time_of_day("05:00", "America/New_York", reference) == datetime(2024, 3, 10, 9, 0, tzinfo=UTC)


def test_split_time_of_day_ignores_timezone_suffix():
    assert split_time_of_day("05:12 (EET)") == (5, 12)
    assert split_time_of_day("7:05") == (7, 5)


@pytest.mark.parametrize("value", ["abc", "", "25:00", "12:75"])
def test_split_time_of_day_rejects_malformed_values(value):
    with pytest.raises(ProviderUnavailable):
        split_time_of_day(value)


def test_get_zone_rejects_unknown_timezone():
    with pytest.raises(ConfigInvalid):
        get_zone("Not/AZone")


def test_minute_arithmetic():
    t = datetime(2024, 3, 10, 23, 50, tzinfo=UTC)
    assert add_minutes(t, 15) == datetime(2024, 3, 11, 0, 5, tzinfo=UTC)
    assert subtract_minutes(t, 2.5) == datetime(2024, 3, 10, 23, 47, 30, tzinfo=UTC)


def test_iso_helpers_handle_none_naive_and_zulu():
    assert to_iso(None) is None
    assert from_iso(None) is None
    assert from_iso("") is None
    assert from_iso("2024-03-10T05:00:00Z") == datetime(2024, 3, 10, 5, 0, tzinfo=UTC)
    assert from_iso("2024-03-10T05:00:00") == datetime(2024, 3, 10, 5, 0, tzinfo=UTC)
    assert to_iso(datetime(2024, 3, 10, 5, 0)) == "2024-03-10T05:00:00+00:00"


def test_format_duration_shapes():
    now = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)
    assert format_duration(now + timedelta(hours=2, minutes=5, seconds=30), now) == "2h 5m"
    assert format_duration(now + timedelta(minutes=4, seconds=30), now) == "4m 30s"
    assert format_duration(now + timedelta(seconds=12), now) == "12s"
    assert format_duration(now + timedelta(milliseconds=500), now) == "0s"


def test_format_duration_past_or_equal_target():
    now = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)
    assert format_duration(now, now) == "Now"
    assert format_duration(now - timedelta(minutes=1), now) == "Now"
    assert format_duration(now, now, past_text="Starting...") == "Starting..."
