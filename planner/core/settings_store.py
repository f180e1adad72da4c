"""
Settings store: one JSON blob in the settings table, read and written whole.

Writers are expected to be serialized by the caller; update() is read-merge-write
without compare-and-swap.
"""
import copy
import logging
import time
from typing import Any, Callable, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from planner.core.db import session_scope
from planner.core.errors import StorageError
from planner.core.models import SETTINGS_KEY, SettingsRecord


class SettingsStore:
    """get() / set() / delete() over the settings blob, retried with exponential backoff."""

    def __init__(self, key: str = SETTINGS_KEY, retries: int = 3, backoff_seconds: float = 0.5):
        self.key = key
        self.retries = max(1, int(retries))
        self.backoff_seconds = backoff_seconds
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_config(cls, config_data: Optional[Dict[str, Any]]) -> "SettingsStore":
        storage = (config_data or {}).get("storage") or {}
        return cls(
            retries=storage.get("retries", 3),
            backoff_seconds=storage.get("backoff_seconds", 0.5),
        )

    def _with_retry(self, operation: str, func: Callable[[], Any]) -> Any:
        delay = self.backoff_seconds
        for attempt in range(1, self.retries + 1):
            try:
                return func()
            except SQLAlchemyError as e:
                if attempt == self.retries:
                    self.logger.error(f"Settings {operation} failed after {attempt} attempts: {e}")
                    raise StorageError(f"Settings {operation} failed: {e}") from e
                self.logger.warning(f"Settings {operation} failed (attempt {attempt}), retrying in {delay}s: {e}")
                time.sleep(delay)
                delay *= 2

    def get(self) -> Optional[Dict[str, Any]]:
        """Return a copy of the stored settings, or None if nothing is stored yet."""
        def _get():
            with session_scope() as session:
                row = session.execute(
                    select(SettingsRecord).where(SettingsRecord.key == self.key)
                ).scalars().first()
                return copy.deepcopy(row.data) if row else None
        return self._with_retry("read", _get)

    def set(self, settings: Dict[str, Any]) -> None:
        """Replace the stored settings."""
        data = copy.deepcopy(settings)

        def _set():
            with session_scope() as session:
                row = session.execute(
                    select(SettingsRecord).where(SettingsRecord.key == self.key)
                ).scalars().first()
                if row:
                    row.data = data
                else:
                    session.add(SettingsRecord(key=self.key, data=data))
        self._with_retry("write", _set)
        self.logger.debug("Settings saved")

    def delete(self) -> None:
        def _delete():
            with session_scope() as session:
                session.execute(delete(SettingsRecord).where(SettingsRecord.key == self.key))
        self._with_retry("delete", _delete)
        self.logger.info("Settings deleted")

    def update(self, func: Callable[[Optional[Dict[str, Any]]], Dict[str, Any]]) -> Dict[str, Any]:
        """Read, apply func to a copy, write the result back and return it."""
        updated = func(self.get())
        self.set(updated)
        return updated
