"""
Strict-mode tick: rebuild the timeline from stored settings and notify when the current item changes.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from planner.core.settings_store import SettingsStore
from planner.core.task import BaseTask, TaskType
from planner.core.timeline import DEFAULT_PRAYER_MINUTES, TRANSITION, Timeline
from planner.plugins.notifier.telegram import TelegramNotifier
from planner.plugins.prayer.prayer_base import PrayerBackend
from planner.plugins.prayer.service import compute_timeline

COMPONENT_NAME = "Strict Schedule"


class StrictScheduleTask(BaseTask):
    """Minute-aligned tick for strict mode."""

    def __init__(
        self,
        store: SettingsStore,
        backend: PrayerBackend,
        notifier: TelegramNotifier,
        config: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(COMPONENT_NAME, TaskType.MINUTE_ALIGNED, {"offset_seconds": 1})
        self.store = store
        self.backend = backend
        self.notifier = notifier
        self.config = config or {}

    def execute(self, now: datetime) -> Optional[Timeline]:
        settings = self.store.get()
        if settings is None:
            self.logger.debug("No settings stored yet, skipping")
            return None
        if settings.get("mode", "strict") != "strict":
            return None

        timeline = compute_timeline(
            settings,
            self.backend,
            now,
            self.config.get("default_prayer_minutes", DEFAULT_PRAYER_MINUTES),
        )
        current = timeline.current
        if current.name != settings.get("last_notified_activity") and current.name != TRANSITION:
            self.logger.info(f"Strict schedule: now {current.name}")
            if not self.notifier.send(f"\U0001F550 <b>{current.name}</b>\n{current.description}"):
                self.logger.warning(f"Notification for {current.name} not delivered")
            self.store.update(lambda latest: {**(latest or settings), "last_notified_activity": current.name})
        return timeline
