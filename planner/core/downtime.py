"""
Downtime state machine: rotation among configured activities with a periodic grip-strength
interrupt that pauses the running activity and resumes it with its remaining time.

Every tick recomputes from absolute timestamps, so ticks may arrive late or irregularly.
"""
import logging
from collections import namedtuple
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional, Sequence

from planner.core.errors import ConfigInvalid
from planner.core.time_utils import from_iso, to_iso

logger = logging.getLogger(__name__)

STARTING = "Starting..."
GRIP = "Grip Strength Training"
SENTINELS = (STARTING, GRIP)

DEFAULT_ACTIVITIES = ("Quran Reading", "LeetCode Session")
DEFAULT_ROTATION_MINUTES = 30
DEFAULT_GRIP_MINUTES = 1
DEFAULT_GRIP_INTERVAL_MINUTES = 30

PausedState = namedtuple("PausedState", ["activity", "remaining_ms"])

TickResult = namedtuple("TickResult", ["state", "notify", "message"])


class DowntimeState(namedtuple(
    "DowntimeState",
    [
        "activities",              # tuple of rotation activity names, in order
        "current_activity_index",  # whose turn it is in the rotation
        "current_activity",        # rotation name, STARTING or GRIP
        "activity_start_time",     # aware datetime or None
        "last_grip_time",          # aware datetime or None
        "grip_strength_enabled",
        "quran_turn",              # parity flag, flipped whenever the rotation advances
        "paused_state",            # PausedState or None
        "last_notified_activity",
    ],
    defaults=(
        DEFAULT_ACTIVITIES, 0, STARTING, None, None, True, True, None, "",
    ),
)):
    """Immutable downtime state. Stored in the settings blob via to_dict/from_dict."""

    __slots__ = ()

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "DowntimeState":
        data = data or {}
        activities = tuple(data.get("activities") or DEFAULT_ACTIVITIES)
        paused = data.get("paused_state")
        paused_state = None
        if paused and paused.get("activity"):
            paused_state = PausedState(paused["activity"], int(paused.get("remaining_ms") or 0))
        index = int(data.get("current_activity_index") or 0)
        return cls(
            activities=activities,
            current_activity_index=index % len(activities) if activities else 0,
            current_activity=data.get("current_activity") or STARTING,
            activity_start_time=from_iso(data.get("activity_start_time")),
            last_grip_time=from_iso(data.get("last_grip_time")),
            grip_strength_enabled=_flag(data.get("grip_strength_enabled")),
            quran_turn=_flag(data.get("quran_turn")),
            paused_state=paused_state,
            last_notified_activity=data.get("last_notified_activity") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activities": list(self.activities),
            "current_activity_index": self.current_activity_index,
            "current_activity": self.current_activity,
            "activity_start_time": to_iso(self.activity_start_time),
            "last_grip_time": to_iso(self.last_grip_time),
            "grip_strength_enabled": self.grip_strength_enabled,
            "quran_turn": self.quran_turn,
            "paused_state": self.paused_state._asdict() if self.paused_state else None,
            "last_notified_activity": self.last_notified_activity,
        }

    @property
    def in_grip(self) -> bool:
        return self.current_activity == GRIP

    @property
    def turn_activity(self) -> str:
        return self.activities[self.current_activity_index]


def _flag(value: Any) -> bool:
    return True if value is None else bool(value)


def _check_activities(activities: Sequence[str]) -> None:
    if not activities:
        raise ConfigInvalid("Downtime rotation has no activities configured")
    for index, name in enumerate(activities):
        if not name or name in SENTINELS:
            raise ConfigInvalid(f"Downtime activity at index {index} has invalid name {name!r}")


def tick(
    state: DowntimeState,
    now: datetime,
    rotation_minutes: float = DEFAULT_ROTATION_MINUTES,
    grip_minutes: float = DEFAULT_GRIP_MINUTES,
    grip_interval_minutes: float = DEFAULT_GRIP_INTERVAL_MINUTES,
) -> TickResult:
    """Advance the downtime state machine to now.

    Rules, first match wins:
      1. a grip interrupt that has run for grip_minutes resumes the paused activity
         with its remaining time, or the activity whose turn it is;
      2. a due grip interrupt (enabled, interval elapsed) pauses the running activity;
      3. a finished rotation activity, or a start from Starting..., hands over to the
         next one in the rotation and flips the turn; a grip left without a start
         time keeps the current turn.
    """
    _check_activities(state.activities)
    rotation = timedelta(minutes=rotation_minutes)
    grip = timedelta(minutes=grip_minutes)
    grip_interval = timedelta(minutes=grip_interval_minutes)

    current = state.current_activity
    started = state.activity_start_time
    new_state = state
    message = ""

    if state.in_grip and started:
        if now - started >= grip:
            paused = state.paused_state
            if paused and paused.activity in state.activities:
                name = paused.activity
                already_done = rotation - timedelta(milliseconds=paused.remaining_ms)
                start_time = now - already_done
                index = state.activities.index(name)
            else:
                name = state.turn_activity
                start_time = now
                index = state.current_activity_index
            message = f"Grip training complete. Resuming: {name}"
            new_state = state._replace(
                current_activity=name,
                current_activity_index=index,
                activity_start_time=start_time,
                last_grip_time=now,
                paused_state=None,
            )
    elif state.grip_strength_enabled and (
        state.last_grip_time is None or now - state.last_grip_time >= grip_interval
    ):
        paused_state = None
        if started and current not in SENTINELS:
            remaining = rotation - (now - started)
            if remaining > timedelta(0):
                paused_state = PausedState(current, int(remaining.total_seconds() * 1000))
        message = f"Time for your {_minutes_label(grip_minutes)} grip set!"
        new_state = state._replace(
            current_activity=GRIP,
            activity_start_time=now,
            paused_state=paused_state,
        )
    elif started is None or current in SENTINELS or now - started >= rotation:
        if current == GRIP:
            index = state.current_activity_index
            quran_turn = state.quran_turn
        else:
            index = (state.current_activity_index + 1) % len(state.activities)
            quran_turn = not state.quran_turn
        name = state.activities[index]
        message = f"Starting {_minutes_label(rotation_minutes)} session: {name}."
        new_state = state._replace(
            current_activity=name,
            current_activity_index=index,
            quran_turn=quran_turn,
            activity_start_time=now,
            paused_state=None,
        )

    notify = new_state.current_activity != new_state.last_notified_activity
    if notify:
        new_state = new_state._replace(last_notified_activity=new_state.current_activity)
        logger.info(f"Downtime activity changed: {current} -> {new_state.current_activity}")
    return TickResult(state=new_state, notify=notify, message=message)


def complete_grip(
    state: DowntimeState,
    now: datetime,
    grip_minutes: float = DEFAULT_GRIP_MINUTES,
) -> DowntimeState:
    """User confirmed the grip set.

    During an interrupt the interrupt is marked as run out, so the next tick resumes the
    paused activity. Outside an interrupt the next grip is pushed back a full interval.
    """
    if state.in_grip:
        return state._replace(activity_start_time=now - timedelta(minutes=grip_minutes))
    return state._replace(last_grip_time=now)


def activity_end_time(
    state: DowntimeState,
    rotation_minutes: float = DEFAULT_ROTATION_MINUTES,
    grip_minutes: float = DEFAULT_GRIP_MINUTES,
) -> Optional[datetime]:
    """When the running activity is due to end, for countdown display."""
    if state.activity_start_time is None or state.current_activity == STARTING:
        return None
    minutes = grip_minutes if state.in_grip else rotation_minutes
    return state.activity_start_time + timedelta(minutes=minutes)


def _minutes_label(minutes: float) -> str:
    value = int(minutes) if float(minutes).is_integer() else minutes
    return f"{value}-minute"
