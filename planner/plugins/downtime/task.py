"""
Downtime tick: advance the rotation / grip state machine and notify on activity changes.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from planner.core.downtime import (
    DEFAULT_GRIP_INTERVAL_MINUTES,
    DEFAULT_GRIP_MINUTES,
    DEFAULT_ROTATION_MINUTES,
    DowntimeState,
    tick,
)
from planner.core.settings_store import SettingsStore
from planner.core.task import BaseTask, TaskType
from planner.plugins.notifier.telegram import TelegramNotifier

COMPONENT_NAME = "Downtime"


class DowntimeTask(BaseTask):
    """Minute-aligned tick for downtime mode."""

    def __init__(self, store: SettingsStore, notifier: TelegramNotifier, config: Optional[Dict[str, Any]] = None):
        super().__init__(COMPONENT_NAME, TaskType.MINUTE_ALIGNED, {"offset_seconds": 1})
        self.store = store
        self.notifier = notifier
        self.config = config or {}

    def timings(self) -> Dict[str, float]:
        return {
            "rotation_minutes": self.config.get("rotation_minutes", DEFAULT_ROTATION_MINUTES),
            "grip_minutes": self.config.get("grip_minutes", DEFAULT_GRIP_MINUTES),
            "grip_interval_minutes": self.config.get("grip_interval_minutes", DEFAULT_GRIP_INTERVAL_MINUTES),
        }

    def execute(self, now: datetime) -> Optional[DowntimeState]:
        settings = self.store.get()
        if settings is None or settings.get("mode") != "downtime":
            return None

        state = DowntimeState.from_dict(settings.get("downtime"))
        result = tick(state, now, **self.timings())

        if result.notify:
            name = result.state.current_activity
            if not self.notifier.send(f"\U0001F4AA <b>{name}</b>\n{result.message}"):
                self.logger.warning(f"Notification for {name} not delivered; state advances anyway")

        if result.state != state:
            new_downtime = result.state.to_dict()
            self.store.update(lambda latest: _merge_downtime(latest or settings, new_downtime))
        return result.state


def _merge_downtime(settings: Dict[str, Any], downtime: Dict[str, Any]) -> Dict[str, Any]:
    """Write the downtime state back without dropping keys this module does not know."""
    merged = dict(settings)
    merged["downtime"] = {**(settings.get("downtime") or {}), **downtime}
    return merged
