"""
Timeline builder. Five prayer anchors plus the user's ordered activity list become a
sorted, gap-free list of ScheduleItem; "current" and "next" are located for a given now.

The activity list is a daily loop: it starts at Fajr and the block after Isha runs
until the next day's Fajr. Each block between two anchors is filled with the
activities listed between them: actions take their fixed duration, fillers share
whatever is left.
"""
import logging
from collections import namedtuple
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from planner.core.errors import ConfigInvalid, ProviderUnavailable
from planner.core.time_utils import (
    add_minutes,
    get_zone,
    local_day_end,
    parse_time_of_day,
)

logger = logging.getLogger(__name__)

PRAYER_NAMES = ("Fajr", "Dhuhr", "Asr", "Maghrib", "Isha")
PRAYER_IDS = tuple(name.lower() for name in PRAYER_NAMES)
PRAYER_DESCRIPTIONS = {
    "fajr": "Dawn prayer.",
    "dhuhr": "Midday prayer.",
    "asr": "Afternoon prayer.",
    "maghrib": "Sunset prayer.",
    "isha": "Night prayer.",
}
DEFAULT_PRAYER_MINUTES = 15

ACTION = "action"
FILLER = "filler"
ACTIVITY_TYPES = (ACTION, FILLER)

FREE_TIME = "Free Time"
TRANSITION = "Transition"
READY = "Ready"

ScheduleItem = namedtuple(
    "ScheduleItem",
    [
        "id",           # activity id, prayer id, or a synthetic id (free-*, transition, ready)
        "name",
        "description",
        "start_time",   # aware datetime, inclusive
        "end_time",     # aware datetime, exclusive
        "is_prayer",
        "is_custom",
    ],
)

Timeline = namedtuple("Timeline", ["schedule", "current", "next"])


def is_prayer(activity: Mapping[str, Any]) -> bool:
    return activity.get("id") in PRAYER_IDS


def validate_activities(activities: Sequence[Mapping[str, Any]]) -> None:
    """Raise ConfigInvalid unless the list holds the five prayers once each, in day order,
    and every other entry is a well-formed action or filler."""
    if not isinstance(activities, (list, tuple)):
        raise ConfigInvalid("Activity list must be a list")
    seen = set()
    prayer_order = []
    for index, activity in enumerate(activities):
        if not isinstance(activity, Mapping) or not activity.get("id"):
            raise ConfigInvalid(f"Activity at index {index} has no id")
        activity_id = activity["id"]
        if activity_id in seen:
            raise ConfigInvalid(f"Duplicate activity id {activity_id!r} at index {index}")
        seen.add(activity_id)
        duration = activity.get("duration")
        if is_prayer(activity):
            prayer_order.append(activity_id)
            if duration is not None and not _positive_number(duration):
                raise ConfigInvalid(f"Prayer {activity_id!r} has invalid duration {duration!r}")
            continue
        activity_type = activity.get("type")
        if activity_type not in ACTIVITY_TYPES:
            raise ConfigInvalid(
                f"Activity {activity_id!r} at index {index} has unknown type {activity_type!r}"
            )
        if activity_type == ACTION and not _positive_number(duration):
            raise ConfigInvalid(
                f"Action {activity_id!r} at index {index} needs a positive duration, got {duration!r}"
            )
    missing = [p for p in PRAYER_IDS if p not in prayer_order]
    if missing:
        raise ConfigInvalid(f"Activity list is missing prayer anchors: {', '.join(missing)}")
    if tuple(prayer_order) != PRAYER_IDS:
        raise ConfigInvalid(f"Prayer anchors out of day order: {', '.join(prayer_order)}")


def _positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def anchor_instants(prayer_times: Mapping[str, str], tz_name: str, day: date) -> Dict[str, datetime]:
    """Parse the provider's five HH:MM strings as instants on the given local day, keyed by prayer id."""
    reference = local_day_end(day, tz_name)
    instants = {}
    for name in PRAYER_NAMES:
        value = prayer_times.get(name)
        if not value:
            raise ProviderUnavailable(f"Prayer times for {day} are missing {name}")
        instants[name.lower()] = parse_time_of_day(value, tz_name, reference)
    return instants


def resolve_loop_day(today_times: Mapping[str, str], tz_name: str, now: datetime) -> date:
    """Local date of the daily loop that contains now.

    Before today's Fajr, now still belongs to yesterday's Isha block.
    """
    fajr = today_times.get("Fajr")
    if not fajr:
        raise ProviderUnavailable("Prayer times are missing Fajr")
    latest_fajr = parse_time_of_day(fajr, tz_name, now)
    return latest_fajr.astimezone(get_zone(tz_name)).date()


def _prayer_item(activity: Mapping[str, Any], start: datetime, minutes: float) -> ScheduleItem:
    prayer_id = activity["id"]
    return ScheduleItem(
        id=prayer_id,
        name=activity.get("name") or f"{prayer_id.capitalize()} Prayer",
        description=activity.get("description") or PRAYER_DESCRIPTIONS[prayer_id],
        start_time=start,
        end_time=add_minutes(start, minutes),
        is_prayer=True,
        is_custom=False,
    )


def _custom_item(activity: Mapping[str, Any], start: datetime, end: datetime) -> ScheduleItem:
    return ScheduleItem(
        id=activity["id"],
        name=activity.get("name") or activity["id"],
        description=activity.get("description", ""),
        start_time=start,
        end_time=end,
        is_prayer=False,
        is_custom=True,
    )


def _free_time(anchor_id: str, start: datetime, end: datetime) -> ScheduleItem:
    return ScheduleItem(
        id=f"free-{anchor_id}",
        name=FREE_TIME,
        description="Nothing planned until the next prayer.",
        start_time=start,
        end_time=end,
        is_prayer=False,
        is_custom=False,
    )


def _split_blocks(activities: Sequence[Mapping[str, Any]]) -> List[Tuple[Mapping[str, Any], List[Mapping[str, Any]]]]:
    """Pair each prayer with the activities listed after it, starting the loop at Fajr."""
    fajr_index = next(i for i, a in enumerate(activities) if a["id"] == "fajr")
    looped = list(activities[fajr_index:]) + list(activities[:fajr_index])
    blocks = []
    for activity in looped:
        if is_prayer(activity):
            blocks.append((activity, []))
        else:
            blocks[-1][1].append(activity)
    return blocks


def fill_block(anchor_id: str, block_activities: Sequence[Mapping[str, Any]], start: datetime, end: datetime) -> List[ScheduleItem]:
    """Lay activities out back to back over [start, end)."""
    block = end - start
    if not block_activities:
        if block > timedelta(minutes=1):
            return [_free_time(anchor_id, start, end)]
        return []

    action_minutes = sum(a["duration"] for a in block_activities if a.get("type") == ACTION)
    filler_count = sum(1 for a in block_activities if a.get("type") == FILLER)
    remaining = block - timedelta(minutes=action_minutes)
    if filler_count and remaining > timedelta(0):
        share = remaining / filler_count
    else:
        share = timedelta(0)
    if remaining < timedelta(0):
        logger.warning(
            f"Actions after {anchor_id} need {action_minutes} min but the block has "
            f"{block.total_seconds() / 60:.1f} min; clipping at the next prayer"
        )

    items = []
    pointer = start
    for activity in block_activities:
        if activity.get("type") == ACTION:
            item_end = min(add_minutes(pointer, activity["duration"]), end)
        else:
            item_end = min(pointer + share, end)
        items.append(_custom_item(activity, pointer, item_end))
        pointer = item_end

    if filler_count and share:
        # Filler shares are rounded to the microsecond; the last item absorbs the residue.
        items[-1] = items[-1]._replace(end_time=end)
    elif pointer < end:
        items.append(_free_time(anchor_id, pointer, end))
    return items


def locate(schedule: Sequence[ScheduleItem], now: datetime) -> Tuple[ScheduleItem, ScheduleItem]:
    """Return (current, next) for now. A boundary instant belongs to the item it starts."""
    for index, item in enumerate(schedule):
        if item.start_time <= now < item.end_time:
            return item, schedule[(index + 1) % len(schedule)]

    for index, item in enumerate(schedule):
        if item.start_time > now:
            gap_start = schedule[index - 1].end_time if index > 0 else now
            transition = ScheduleItem(
                id="transition",
                name=TRANSITION,
                description=f"Preparing for {item.name}.",
                start_time=min(gap_start, now),
                end_time=item.start_time,
                is_prayer=False,
                is_custom=False,
            )
            return transition, item

    logger.warning(f"{now.isoformat()} is outside the computed timeline; showing Ready")
    ready = ScheduleItem(
        id="ready",
        name=READY,
        description="Waiting for the schedule to begin.",
        start_time=now,
        end_time=now,
        is_prayer=False,
        is_custom=False,
    )
    return ready, (schedule[0] if schedule else ready)


def build_timeline(
    activities: Sequence[Mapping[str, Any]],
    prayer_instants: Mapping[str, datetime],
    next_fajr: datetime,
    now: datetime,
    default_prayer_minutes: float = DEFAULT_PRAYER_MINUTES,
) -> Timeline:
    """Build the day's schedule and find the current and next items.

    Args:
        activities: ordered activity list containing the five prayers (ids fajr..isha)
        prayer_instants: prayer id -> aware datetime for the loop's day
        next_fajr: the following day's Fajr, which closes the Isha block
        now: evaluation instant
        default_prayer_minutes: prayer length unless the prayer entry sets duration
    """
    validate_activities(activities)
    missing = [p for p in PRAYER_IDS if p not in prayer_instants]
    if missing:
        raise ConfigInvalid(f"No instant given for prayer anchors: {', '.join(missing)}")

    blocks = _split_blocks(activities)
    items: List[ScheduleItem] = []
    for position, (prayer, block_activities) in enumerate(blocks):
        prayer_id = prayer["id"]
        if position + 1 < len(blocks):
            block_end = prayer_instants[blocks[position + 1][0]["id"]]
        else:
            block_end = next_fajr
        minutes = prayer.get("duration") or default_prayer_minutes
        prayer_item = _prayer_item(prayer, prayer_instants[prayer_id], minutes)
        if prayer_item.end_time > block_end:
            prayer_item = prayer_item._replace(end_time=block_end)
        items.append(prayer_item)
        items.extend(fill_block(prayer_id, block_activities, prayer_item.end_time, block_end))

    schedule = sorted(
        (item for item in items if item.end_time > item.start_time),
        key=lambda item: item.start_time,
    )
    current, next_item = locate(schedule, now)
    return Timeline(schedule=schedule, current=current, next=next_item)


def find_item(timeline: Timeline, item_id: str) -> Optional[ScheduleItem]:
    return next((item for item in timeline.schedule if item.id == item_id), None)
