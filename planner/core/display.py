"""
Display state for the one-second tick. Holds the anchors computed by the last coarse tick
and only re-renders the countdown; it never calls the timeline builder or the state machine.
"""
import logging
import queue
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from planner.core.countdown import format_duration
from planner.core.downtime import (
    DEFAULT_GRIP_INTERVAL_MINUTES,
    DEFAULT_GRIP_MINUTES,
    DEFAULT_ROTATION_MINUTES,
    GRIP,
    DowntimeState,
    activity_end_time,
)
from planner.core.time_utils import to_iso
from planner.core.timeline import Timeline


class DisplayState:
    def __init__(self, downtime_config: Optional[Dict[str, Any]] = None):
        self.downtime_config = downtime_config or {}
        self.logger = logging.getLogger(self.__class__.__name__)
        self._lock = threading.Lock()
        self.mode: Optional[str] = None
        self.current_name = ""
        self.current_description = ""
        self.next_name = ""
        self.target: Optional[datetime] = None
        self.countdown = ""

    def drain(self, result_queue: queue.Queue) -> None:
        """Apply every tick result waiting on the task manager's queue."""
        while True:
            try:
                _, result = result_queue.get_nowait()
            except queue.Empty:
                return
            if result is not None:
                self.apply_result(result)

    def apply_result(self, result: Any) -> None:
        with self._lock:
            if isinstance(result, Timeline):
                self._apply_timeline(result)
            elif isinstance(result, DowntimeState):
                self._apply_downtime(result)
            else:
                self.logger.debug(f"Ignoring result of type {type(result).__name__}")

    def _apply_timeline(self, timeline: Timeline) -> None:
        current = timeline.current
        self.mode = "strict"
        self.current_name = current.name
        self.current_description = current.description
        self.next_name = timeline.next.name
        # The last item of the day wraps to the first one, so count down to the end of current
        self.target = current.end_time if current.end_time > current.start_time else timeline.next.start_time

    def _apply_downtime(self, state: DowntimeState) -> None:
        rotation = self.downtime_config.get("rotation_minutes", DEFAULT_ROTATION_MINUTES)
        grip = self.downtime_config.get("grip_minutes", DEFAULT_GRIP_MINUTES)
        interval = self.downtime_config.get("grip_interval_minutes", DEFAULT_GRIP_INTERVAL_MINUTES)
        end = activity_end_time(state, rotation, grip)

        self.mode = "downtime"
        self.current_name = state.current_activity
        self.current_description = ""
        if state.in_grip:
            paused = state.paused_state
            self.current_description = "Grip interrupt in progress."
            self.next_name = paused.activity if paused else state.turn_activity
        elif (
            state.grip_strength_enabled
            and end is not None
            and state.last_grip_time is not None
            and state.last_grip_time + timedelta(minutes=interval) < end
        ):
            self.next_name = GRIP
        else:
            self.next_name = state.activities[(state.current_activity_index + 1) % len(state.activities)]
        self.target = end

    def refresh(self, now: datetime) -> Dict[str, Any]:
        """Re-render the countdown for now and return a snapshot."""
        with self._lock:
            self.countdown = format_duration(self.target, now) if self.target else ""
            return self._snapshot()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "current": self.current_name,
            "description": self.current_description,
            "next": self.next_name,
            "target": to_iso(self.target),
            "countdown": self.countdown,
        }

    def reset(self) -> None:
        """Forget the last tick results (settings were deleted)."""
        with self._lock:
            self.mode = None
            self.current_name = ""
            self.current_description = ""
            self.next_name = ""
            self.target = None
            self.countdown = ""
