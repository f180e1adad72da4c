"""
Base task type and abstract BaseTask with next_run persistence in DB.
"""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from queue import Queue
from typing import Any, Dict, Optional

from sqlalchemy import select

from planner.core.db import session_scope
from planner.core.models import TaskSchedule

logger = logging.getLogger(__name__)


class TaskType:
    """Schedule kind for tasks."""
    MINUTE_ALIGNED = "minute_aligned"
    INTERVAL_SECONDS = "interval_seconds"


def compute_next_run(
    schedule_type: str,
    schedule_config: Optional[Dict[str, Any]],
    last_run: Optional[datetime],
) -> datetime:
    """Compute next run datetime (naive UTC) from schedule_type, schedule_config, and last_run."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    if last_run is None:
        last_run = now

    if schedule_type == TaskType.MINUTE_ALIGNED:
        offset = int((schedule_config or {}).get("offset_seconds", 1))
        next_run = last_run.replace(second=0, microsecond=0) + timedelta(seconds=offset)
        if next_run <= last_run:
            next_run += timedelta(minutes=1)
        return next_run

    if schedule_type == TaskType.INTERVAL_SECONDS and schedule_config:
        sec = int(schedule_config.get("interval_seconds", 60))
        return last_run + timedelta(seconds=sec)

    return last_run + timedelta(minutes=1)


def get_next_run_from_db(component_name: str) -> Optional[datetime]:
    """Read next_run_at for component from DB. None means run immediately."""
    with session_scope() as session:
        row = session.execute(
            select(TaskSchedule).where(TaskSchedule.component_name == component_name)
        ).scalars().first()
        if row and row.next_run_at is not None:
            return row.next_run_at
    return None


def upsert_task_schedule(
    component_name: str,
    schedule_type: str,
    schedule_config: Optional[Dict[str, Any]],
    next_run_at: Optional[datetime] = None,
) -> None:
    """Create or update the TaskSchedule row. A new row leaves next_run_at null (run immediately)."""
    with session_scope() as session:
        row = session.execute(
            select(TaskSchedule).where(TaskSchedule.component_name == component_name)
        ).scalars().first()
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        if row:
            row.schedule_type = schedule_type
            row.schedule_config = schedule_config
            if next_run_at is not None:
                row.next_run_at = next_run_at
            row.updated_at = now
        else:
            session.add(TaskSchedule(
                component_name=component_name,
                schedule_type=schedule_type,
                schedule_config=schedule_config,
                next_run_at=next_run_at,
                created_at=now,
                updated_at=now,
            ))


def update_after_run(component_name: str, error: Optional[str] = None) -> None:
    """Record the run (and its error, if any) and compute next_run_at."""
    with session_scope() as session:
        row = session.execute(
            select(TaskSchedule).where(TaskSchedule.component_name == component_name)
        ).scalars().first()
        if not row:
            return
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        row.last_run_at = now
        row.last_error = error
        row.next_run_at = compute_next_run(row.schedule_type, row.schedule_config, now)
        row.updated_at = now


class BaseTask(ABC):
    """
    Abstract base for tick tasks. Subclasses implement execute(now); run() wraps it with
    error recording, next_run persistence and result publishing.
    """

    def __init__(self, component_name: str, schedule_type: str, schedule_config: Optional[Dict[str, Any]] = None):
        self.component_name = component_name
        self.schedule_type = schedule_type
        self.schedule_config = schedule_config or {}
        self.logger = logging.getLogger(self.__class__.__name__)
        # the timer thread and run_task_now may both run the same task
        self._run_lock = threading.Lock()

    def get_next_run(self, last_run: Optional[datetime] = None) -> datetime:
        """Compute next run time from schedule_type and schedule_config."""
        return compute_next_run(self.schedule_type, self.schedule_config, last_run)

    def ensure_scheduled(self) -> None:
        """Ensure the TaskSchedule row exists so the schedule shows up in the API."""
        upsert_task_schedule(self.component_name, self.schedule_type, self.schedule_config)

    def run(self, result_queue: Queue, now: Optional[datetime] = None) -> Any:
        """Execute once, record the outcome and put (component_name, result) on result_queue."""
        with self._run_lock:
            now = now or datetime.now(timezone.utc)
            result = None
            error = None
            try:
                result = self.execute(now)
            except Exception as e:
                error = f"{e.__class__.__name__}: {e}"
                self.logger.exception(f"{self.component_name} failed: {e}")
            update_after_run(self.component_name, error)
            result_queue.put((self.component_name, result))
            return result

    @abstractmethod
    def execute(self, now: datetime) -> Any:
        """Do the work for one tick and return a result for the display loop."""
        pass
