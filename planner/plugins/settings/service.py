"""
Settings actions. Each handler takes the current settings blob and a payload and returns
the new blob; apply_action() does the read-merge-write through the store.

Handlers copy the blob before changing it, so keys they do not know survive every update.
"""
import copy
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from planner.core import downtime
from planner.core.errors import ConfigInvalid, SettingsNotFound
from planner.core.settings_store import SettingsStore
from planner.core.time_utils import get_zone, to_iso, utc_now
from planner.core.timeline import PRAYER_IDS, PRAYER_NAMES, validate_activities

logger = logging.getLogger(__name__)

MODES = ("strict", "downtime")
MEAL_MODES = ("bulking", "maintenance", "cutting")

DEFAULT_SCHEDULE = [
    {"id": prayer_id, "name": f"{name} Prayer"}
    for prayer_id, name in zip(PRAYER_IDS, PRAYER_NAMES)
]

Handler = Callable[[Optional[Dict[str, Any]], Mapping[str, Any], datetime, Mapping[str, Any]], Dict[str, Any]]


def _require(settings: Optional[Dict[str, Any]], action: str) -> Dict[str, Any]:
    if settings is None:
        raise SettingsNotFound(f"Cannot {action.replace('_', ' ')} before location setup")
    return copy.deepcopy(settings)


def _downtime_state(settings: Mapping[str, Any]) -> downtime.DowntimeState:
    return downtime.DowntimeState.from_dict(settings.get("downtime"))


def _with_downtime(settings: Dict[str, Any], state: downtime.DowntimeState) -> Dict[str, Any]:
    settings["downtime"] = {**(settings.get("downtime") or {}), **state.to_dict()}
    return settings


def setup_location(settings, payload, now, options) -> Dict[str, Any]:
    latitude = payload.get("latitude")
    longitude = payload.get("longitude")
    tz_name = payload.get("timezone")
    for field, value in (("latitude", latitude), ("longitude", longitude)):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ConfigInvalid(f"Missing or invalid {field} for location setup")
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise ConfigInvalid(f"Coordinates out of range: {latitude}, {longitude}")
    if not tz_name:
        raise ConfigInvalid("Missing timezone for location setup")
    get_zone(tz_name)
    return {
        "latitude": latitude,
        "longitude": longitude,
        "city": payload.get("city") or "Unknown City",
        "timezone": tz_name,
        "mode": "strict",
        "meal_mode": "maintenance",
        "schedule": copy.deepcopy(DEFAULT_SCHEDULE),
        "downtime": downtime.DowntimeState().to_dict(),
        "meal_log": [],
        "last_notified_activity": "",
    }


def toggle_mode(settings, payload, now, options) -> Dict[str, Any]:
    settings = _require(settings, "toggle_mode")
    settings["mode"] = "strict" if settings.get("mode") == "downtime" else "downtime"
    settings["last_notified_activity"] = ""
    state = _downtime_state(settings)
    if settings["mode"] == "downtime":
        state = state._replace(
            current_activity=downtime.STARTING,
            activity_start_time=None,
            paused_state=None,
            last_notified_activity="",
        )
    return _with_downtime(settings, state)


def set_meal_mode(settings, payload, now, options) -> Dict[str, Any]:
    settings = _require(settings, "set_meal_mode")
    mode = payload.get("mode")
    if mode not in MEAL_MODES:
        raise ConfigInvalid(f"Invalid meal mode {mode!r}; expected one of {', '.join(MEAL_MODES)}")
    settings["meal_mode"] = mode
    return settings


def toggle_grip_enabled(settings, payload, now, options) -> Dict[str, Any]:
    settings = _require(settings, "toggle_grip_enabled")
    is_enabled = payload.get("is_enabled")
    if not isinstance(is_enabled, bool):
        raise ConfigInvalid("'is_enabled' must be a boolean")
    state = _downtime_state(settings)._replace(grip_strength_enabled=is_enabled)
    return _with_downtime(settings, state)


def complete_grip(settings, payload, now, options) -> Dict[str, Any]:
    settings = _require(settings, "complete_grip")
    state = downtime.complete_grip(
        _downtime_state(settings),
        now,
        grip_minutes=options.get("grip_minutes", downtime.DEFAULT_GRIP_MINUTES),
    )
    return _with_downtime(settings, state)


def add_activity(settings, payload, now, options) -> Dict[str, Any]:
    settings = _require(settings, "add_activity")
    activity = payload.get("activity")
    after_id = payload.get("after_activity_id")
    if not isinstance(activity, Mapping):
        raise ConfigInvalid("'activity' must be an object")
    schedule: List[Dict[str, Any]] = settings.get("schedule") or copy.deepcopy(DEFAULT_SCHEDULE)
    position = next((i for i, a in enumerate(schedule) if a.get("id") == after_id), None)
    if position is None:
        raise ConfigInvalid(f"No activity with id {after_id!r} to insert after")

    new_activity = {
        "id": f"act-{uuid.uuid4().hex[:12]}",
        "name": str(activity.get("name") or "").strip(),
        "type": activity.get("type"),
    }
    if not new_activity["name"]:
        raise ConfigInvalid("New activity needs a name")
    if activity.get("duration") is not None:
        new_activity["duration"] = activity["duration"]
    if activity.get("description"):
        new_activity["description"] = activity["description"]

    schedule.insert(position + 1, new_activity)
    validate_activities(schedule)
    settings["schedule"] = schedule
    return settings


def remove_activity(settings, payload, now, options) -> Dict[str, Any]:
    settings = _require(settings, "remove_activity")
    activity_id = payload.get("activity_id")
    if activity_id in PRAYER_IDS:
        raise ConfigInvalid(f"Prayer {activity_id!r} cannot be removed")
    schedule = settings.get("schedule") or []
    remaining = [a for a in schedule if a.get("id") != activity_id]
    if len(remaining) == len(schedule):
        raise ConfigInvalid(f"No activity with id {activity_id!r}")
    settings["schedule"] = remaining
    return settings


def add_meal_log(settings, payload, now, options) -> Dict[str, Any]:
    settings = _require(settings, "add_meal_log")
    meal = payload.get("meal") or {}
    meal_type = meal.get("meal_type")
    description = str(meal.get("description") or "").strip()
    if meal_type not in MEAL_MODES:
        raise ConfigInvalid(f"Invalid meal type {meal_type!r}")
    if not description:
        raise ConfigInvalid("Meal description is empty")
    settings["meal_log"] = list(settings.get("meal_log") or []) + [
        {"meal_type": meal_type, "description": description, "logged_at": to_iso(now)}
    ]
    return settings


def set_downtime_activities(settings, payload, now, options) -> Dict[str, Any]:
    settings = _require(settings, "set_downtime_activities")
    activities = payload.get("activities")
    if not isinstance(activities, list) or not activities:
        raise ConfigInvalid("Downtime rotation needs at least one activity")
    names = tuple(str(name).strip() for name in activities)
    for index, name in enumerate(names):
        if not name or name in downtime.SENTINELS:
            raise ConfigInvalid(f"Downtime activity at index {index} has invalid name {name!r}")
    state = _downtime_state(settings)
    index = names.index(state.current_activity) if state.current_activity in names else 0
    changes = {"activities": names, "current_activity_index": index}
    if state.current_activity not in names and state.current_activity != downtime.GRIP:
        changes.update(current_activity=downtime.STARTING, activity_start_time=None)
    if state.paused_state and state.paused_state.activity not in names:
        changes["paused_state"] = None
    return _with_downtime(settings, state._replace(**changes))


ACTION_HANDLERS: Dict[str, Handler] = {
    "setup_location": setup_location,
    "toggle_mode": toggle_mode,
    "set_meal_mode": set_meal_mode,
    "toggle_grip_enabled": toggle_grip_enabled,
    "complete_grip": complete_grip,
    "add_activity": add_activity,
    "remove_activity": remove_activity,
    "add_meal_log": add_meal_log,
    "set_downtime_activities": set_downtime_activities,
}


def apply_action(
    store: SettingsStore,
    action: str,
    payload: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
    options: Optional[Mapping[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """Apply one settings action and persist the result. 'reset' deletes the blob and returns None."""
    payload = payload or {}
    now = now or utc_now()
    options = options or {}
    if action == "reset":
        store.delete()
        return None
    handler = ACTION_HANDLERS.get(action)
    if handler is None:
        raise ConfigInvalid(f"Invalid action {action!r}")

    current = None if action == "setup_location" else store.get()
    updated = handler(current, payload, now, options)
    store.set(updated)
    logger.info(f"Settings action applied: {action}")
    return updated
