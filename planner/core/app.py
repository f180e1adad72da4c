import logging
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from .config import Config
from .db import init_db
from .display import DisplayState
from .errors import PlannerError
from .settings_store import SettingsStore
from .task_manager import TaskManager
from .time_utils import utc_now

from planner.plugins.downtime.task import DowntimeTask
from planner.plugins.notifier.telegram import TelegramNotifier
from planner.plugins.prayer.prayer_base import create_backend
from planner.plugins.prayer.task import StrictScheduleTask
from planner.plugins.settings.service import apply_action

DISPLAY_TICK = "Display"


class PlannerApp:
    def __init__(
        self,
        config_path: Optional[str] = None,
        db_url: Optional[str] = None,
        watch_config: bool = True,
        configure_logging: bool = True,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)

        self.config = Config(config_path=config_path, watch=watch_config)
        self.config.register_change_callback(self.handle_config_change)

        if configure_logging:
            self._setup_logging()

        # Initialize database (before the store and tasks so tables exist)
        init_db(self.config.data, db_url)

        self.store = SettingsStore.from_config(self.config.data)
        self.backend = create_backend(self.config.section("prayer"))
        self.notifier = TelegramNotifier(self.config.section("notifier"))
        self.display = DisplayState(self.config.section("downtime"))

        self.task_manager = TaskManager()
        self.strict_task = StrictScheduleTask(self.store, self.backend, self.notifier, self.config.section("prayer"))
        self.downtime_task = DowntimeTask(self.store, self.notifier, self.config.section("downtime"))
        self.task_manager.register_task(self.strict_task)
        self.task_manager.register_task(self.downtime_task)

        self._stop_event = threading.Event()
        self._last_current: Optional[str] = None

    def _setup_logging(self) -> None:
        """Configure logging to write to both file and stdout"""
        logging_config = self.config.section("logging")
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
        root_logger.setLevel(getattr(logging, str(logging_config.get("level", "INFO")).upper(), logging.INFO))

        # Create formatter with line numbers
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        )

        # File handler
        log_file = logging_config.get("file")
        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        # Console handler
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        logging.info("Prayer planner starting...")

    def seed_settings_from_config(self) -> None:
        """First start: create the settings blob from the config's location section, if it has one."""
        location = self.config.section("location")
        if location.get("latitude") is None or location.get("longitude") is None:
            return
        if self.store.get() is not None:
            return
        self.logger.info(f"No settings stored; setting up location from config ({location.get('city') or 'no city'})")
        apply_action(self.store, "setup_location", location)

    def apply_settings_action(self, action: str, payload: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Apply a settings action, then re-run both ticks so the display catches up immediately."""
        settings = apply_action(self.store, action, payload, options=self.downtime_task.timings())
        if settings is None:
            self.display.reset()
            return None
        self.run_ticks()
        return self.store.get()

    def run_ticks(self) -> Dict[str, Any]:
        """Run the strict and downtime ticks once and render the display for now."""
        for task in (self.strict_task, self.downtime_task):
            self.task_manager.run_task_now(task.component_name)
        return self._display_tick()

    def _display_tick(self) -> Dict[str, Any]:
        self.display.drain(self.task_manager.result_queue)
        snapshot = self.display.refresh(utc_now())
        if snapshot["current"] != self._last_current:
            self._last_current = snapshot["current"]
            self.logger.info(f"Now: {snapshot['current']} (next: {snapshot['next']}, {snapshot['countdown']})")
        return snapshot

    def handle_config_change(self, new_config: Dict[str, Any]) -> None:
        """Handle configuration changes"""
        self.logger.info("Handling config change")
        try:
            backend = create_backend(new_config.get("prayer") or {})
            notifier = TelegramNotifier(new_config.get("notifier") or {})
        except PlannerError as e:
            self.logger.error(f"Config change rejected, keeping previous settings: {e}")
            return

        self.backend = backend
        self.notifier = notifier
        self.strict_task.backend = backend
        self.strict_task.notifier = notifier
        self.strict_task.config = new_config.get("prayer") or {}
        self.downtime_task.notifier = notifier
        self.downtime_task.config = new_config.get("downtime") or {}
        self.display.downtime_config = new_config.get("downtime") or {}

        storage = new_config.get("storage") or {}
        self.store.retries = max(1, int(storage.get("retries", self.store.retries)))
        self.store.backoff_seconds = storage.get("backoff_seconds", self.store.backoff_seconds)

    def run(self) -> None:
        try:
            self.seed_settings_from_config()
            self.task_manager.start()
            self.task_manager.schedule_task(DISPLAY_TICK, self._display_tick, 1, one_time=False)

            # Start API server if enabled (api.enabled in config)
            try:
                from planner.api import run_api_server
                run_api_server(self)
            except Exception as e:
                self.logger.warning(f"API server not started: {e}")

            while not self._stop_event.wait(1):
                pass
        except KeyboardInterrupt:
            self.logger.info("Interrupted, shutting down")
        finally:
            self.stop()

    def stop(self) -> None:
        self._stop_event.set()
        self.task_manager.stop()
        self.config.cleanup()
