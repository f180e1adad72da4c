"""
Single place for scheduling: in-memory timers and DB-backed registered tasks.

Registered tasks (the coarse, minute-aligned ticks) run at next_run_at from the DB and are
re-armed after each run. Repeating timers (the one-second display tick) run in-process only.
"""
import logging
from datetime import datetime, timezone
from queue import Queue
from threading import Timer
from typing import Any, Callable, Dict, List

from planner.core.task import BaseTask, get_next_run_from_db


class TaskManager:
    def __init__(self):
        self.tasks: Dict[str, Timer] = {}
        self.result_queue = Queue()
        self.logger = logging.getLogger("TaskManager")
        self._registered_tasks: Dict[str, BaseTask] = {}
        self._stopped = False

    def schedule_task(self, name: str, callback: Callable, delay: float, one_time: bool = True) -> None:
        """Schedule a callback to run after delay seconds; repeat every delay unless one_time."""
        if self._stopped:
            return
        self.logger.debug(f"Scheduling task {name} with delay {delay} seconds")
        if name in self.tasks:
            self.tasks[name].cancel()

        scheduled_time = datetime.now().timestamp() + delay
        timer = Timer(delay, self._run_task, args=(name, callback, delay, one_time))
        timer.daemon = True
        timer.scheduled_time = scheduled_time

        self.tasks[name] = timer
        timer.start()

    def _run_task(self, name: str, callback: Callable, delay: float, one_time: bool) -> None:
        """Run the task and reschedule if needed."""
        try:
            callback()
        except Exception as e:
            self.logger.exception(f"Error running task {name}: {e}")
        if not one_time:
            self.schedule_task(name, callback, delay, one_time)

    def register_task(self, task: BaseTask) -> None:
        """Register a tick task and make sure its schedule row exists."""
        self._registered_tasks[task.component_name] = task
        task.ensure_scheduled()
        self.logger.debug(f"Registered task: {task.component_name}")

    def schedule_registered_task(self, component_name: str) -> None:
        """Arm a registered task for next_run_at from the DB, or immediately if unset or past due."""
        if component_name not in self._registered_tasks:
            self.logger.warning(f"No task registered for component: {component_name}")
            return
        next_run = get_next_run_from_db(component_name)
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        if next_run is None:
            delay = 0
        else:
            delay = max(0.0, (next_run - now).total_seconds())
        callback = lambda: self._run_registered_and_reschedule(component_name)
        self.schedule_task(component_name, callback, delay, one_time=True)

    def _run_registered_and_reschedule(self, component_name: str) -> None:
        """Run the registered task then reschedule for the next_run it stored."""
        task = self._registered_tasks.get(component_name)
        if task:
            task.run(self.result_queue)
        self.schedule_registered_task(component_name)

    def start(self) -> None:
        """Arm every registered task."""
        for component_name in self._registered_tasks:
            self.schedule_registered_task(component_name)

    def get_active_timers(self) -> List[Dict[str, Any]]:
        """Return list of active timer names and their next run time (for API)."""
        result = []
        for name, timer in self.tasks.items():
            if getattr(timer, "scheduled_time", None) is not None:
                next_run = datetime.fromtimestamp(timer.scheduled_time, tz=timezone.utc)
                result.append({"name": name, "next_run_at": next_run})
        return result

    def run_task_now(self, component_name: str) -> Any:
        """Run a registered task once immediately (e.g. right after a settings change)."""
        task = self._registered_tasks.get(component_name)
        if not task:
            self.logger.warning(f"No task registered for component: {component_name}")
            return None
        return task.run(self.result_queue)

    def stop(self) -> None:
        """Stop all scheduled tasks."""
        self._stopped = True
        for timer in self.tasks.values():
            timer.cancel()
