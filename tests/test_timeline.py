from datetime import date, datetime, timedelta, timezone

import pytest

from planner.core.errors import ConfigInvalid, ProviderUnavailable
from planner.core.timeline import (
    FREE_TIME,
    READY,
    TRANSITION,
    ScheduleItem,
    anchor_instants,
    build_timeline,
    find_item,
    locate,
    resolve_loop_day,
)
from tests.fakes import PRAYER_TIMES

UTC = timezone.utc
DAY = date(2024, 3, 10)
NEXT_FAJR = datetime(2024, 3, 11, 5, 0, tzinfo=UTC)

PRAYERS = [
    {"id": "fajr", "name": "Fajr Prayer"},
    {"id": "dhuhr", "name": "Dhuhr Prayer"},
    {"id": "asr", "name": "Asr Prayer"},
    {"id": "maghrib", "name": "Maghrib Prayer"},
    {"id": "isha", "name": "Isha Prayer"},
]


def at(hour, minute=0, day=10):
    return datetime(2024, 3, day, hour, minute, tzinfo=UTC)


def with_after(prayer_id, *activities):
    """The five prayers with activities inserted right after prayer_id."""
    result = []
    for prayer in PRAYERS:
        result.append(prayer)
        if prayer["id"] == prayer_id:
            result.extend(activities)
    return result


def build(activities, now):
    return build_timeline(activities, anchor_instants(PRAYER_TIMES, "UTC", DAY), NEXT_FAJR, now)


def assert_tiles_the_day(schedule):
    assert schedule[0].start_time == at(5)
    assert schedule[-1].end_time == NEXT_FAJR
    for item, following in zip(schedule, schedule[1:]):
        assert item.end_time == following.start_time
        assert item.end_time > item.start_time


def test_prayers_only_day_is_prayers_and_free_time():
    timeline = build(PRAYERS, at(10))
    schedule = timeline.schedule

    assert [item.id for item in schedule] == [
        "fajr", "free-fajr", "dhuhr", "free-dhuhr", "asr", "free-asr",
        "maghrib", "free-maghrib", "isha", "free-isha",
    ]
    assert_tiles_the_day(schedule)
    assert schedule[0].end_time == at(5, 15)
    assert schedule[0].description == "Dawn prayer."
    assert timeline.current.name == FREE_TIME
    assert timeline.next.id == "dhuhr"


def test_filler_takes_what_the_actions_leave():
    activities = with_after(
        "fajr",
        {"id": "gym", "name": "Gym", "type": "action", "duration": 30},
        {"id": "study", "name": "Study", "type": "filler"},
    )
    timeline = build(activities, at(10))
    gym = find_item(timeline, "gym")
    study = find_item(timeline, "study")

    assert gym.start_time == at(5, 15)
    assert gym.end_time == at(5, 45)
    assert study.start_time == at(5, 45)
    assert study.end_time == at(12)
    assert study.end_time - study.start_time == timedelta(minutes=375)
    assert study.is_custom and not study.is_prayer
    assert timeline.current.id == "study"
    assert timeline.next.id == "dhuhr"
    assert_tiles_the_day(timeline.schedule)


def test_fillers_share_equally():
    activities = with_after(
        "fajr",
        {"id": "read", "name": "Read", "type": "filler"},
        {"id": "work", "name": "Work", "type": "filler"},
    )
    timeline = build(activities, at(10))
    read = find_item(timeline, "read")
    work = find_item(timeline, "work")

    assert read.end_time - read.start_time == timedelta(minutes=202, seconds=30)
    assert work.start_time == read.end_time
    assert work.end_time == at(12)


def test_actions_without_filler_leave_free_time():
    activities = with_after("dhuhr", {"id": "lunch", "name": "Lunch", "type": "action", "duration": 45})
    timeline = build(activities, at(13))

    lunch = find_item(timeline, "lunch")
    free = find_item(timeline, "free-dhuhr")
    assert lunch.end_time == at(13)
    assert free.start_time == at(13)
    assert free.end_time == at(15, 30)
    # A boundary instant belongs to the item that starts there
    assert timeline.current.id == "free-dhuhr"


def test_overlong_action_is_clipped_at_next_prayer():
    activities = with_after("dhuhr", {"id": "trip", "name": "Trip", "type": "action", "duration": 300})
    timeline = build(activities, at(13))

    trip = find_item(timeline, "trip")
    assert trip.end_time == at(15, 30)
    assert find_item(timeline, "asr").start_time == at(15, 30)
    assert find_item(timeline, "free-dhuhr") is None
    assert_tiles_the_day(timeline.schedule)


def test_prayer_is_clipped_to_next_anchor():
    times = dict(PRAYER_TIMES, Isha="18:10")
    timeline = build_timeline(PRAYERS, anchor_instants(times, "UTC", DAY), NEXT_FAJR, at(18, 5))

    maghrib = find_item(timeline, "maghrib")
    assert maghrib.end_time == at(18, 10)
    assert find_item(timeline, "free-maghrib") is None
    assert timeline.current.id == "maghrib"
    assert timeline.next.id == "isha"


def test_prayer_duration_override():
    activities = [dict(p, duration=30) if p["id"] == "fajr" else p for p in PRAYERS]
    timeline = build(activities, at(5, 20))
    assert timeline.current.id == "fajr"
    assert timeline.current.end_time == at(5, 30)


def test_entries_before_fajr_belong_to_the_isha_block():
    activities = [{"id": "night", "name": "Night Reading", "type": "action", "duration": 60}] + PRAYERS
    timeline = build(activities, at(20))

    night = find_item(timeline, "night")
    assert night.start_time == at(19, 45)
    assert night.end_time == at(20, 45)
    assert timeline.current.id == "night"
    assert_tiles_the_day(timeline.schedule)


def test_before_fajr_belongs_to_previous_loop():
    now = at(3, day=11)
    assert resolve_loop_day(PRAYER_TIMES, "UTC", now) == DAY
    assert resolve_loop_day(PRAYER_TIMES, "UTC", at(6, day=11)) == date(2024, 3, 11)

    timeline = build(PRAYERS, now)
    assert timeline.current.id == "free-isha"
    assert timeline.next.id == "fajr"


def test_last_item_wraps_to_first():
    timeline = build(PRAYERS, at(4, 59, day=11))
    assert timeline.current.id == "free-isha"
    assert timeline.next == timeline.schedule[0]


def test_build_is_idempotent():
    activities = with_after("asr", {"id": "walk", "name": "Walk", "type": "filler"})
    assert build(activities, at(16)) == build(activities, at(16))


def _item(item_id, start, end):
    return ScheduleItem(item_id, item_id, "", start, end, False, True)


def test_locate_fills_gap_with_transition():
    schedule = [_item("a", at(10), at(11)), _item("b", at(12), at(13))]

    current, next_item = locate(schedule, at(11, 30))
    assert current.name == TRANSITION
    assert current.start_time == at(11)
    assert current.end_time == at(12)
    assert next_item.id == "b"

    current, next_item = locate(schedule, at(9))
    assert current.name == TRANSITION
    assert current.start_time == at(9)
    assert next_item.id == "a"


def test_locate_outside_timeline_is_ready():
    schedule = [_item("a", at(10), at(11))]
    current, next_item = locate(schedule, at(14))
    assert current.name == READY
    assert current.start_time == current.end_time == at(14)
    assert next_item.id == "a"

    current, next_item = locate([], at(14))
    assert current.name == READY
    assert next_item is current


def test_anchor_instants_missing_prayer():
    times = {k: v for k, v in PRAYER_TIMES.items() if k != "Asr"}
    with pytest.raises(ProviderUnavailable):
        anchor_instants(times, "UTC", DAY)


@pytest.mark.parametrize(
    "activities",
    [
        PRAYERS[:4],
        PRAYERS + [{"id": "fajr", "name": "Again"}],
        with_after("fajr", {"id": "gym", "name": "Gym", "type": "action"}),
        with_after("fajr", {"id": "gym", "name": "Gym", "type": "action", "duration": 0}),
        with_after("fajr", {"id": "nap", "name": "Nap", "type": "sleep"}),
        with_after("fajr", {"name": "No id", "type": "filler"}),
        [PRAYERS[1], PRAYERS[0]] + PRAYERS[2:],
    ],
)
def test_invalid_activity_lists_are_rejected(activities):
    with pytest.raises(ConfigInvalid):
        build(activities, at(10))
