import pytest
from sqlalchemy.exc import OperationalError

from planner.core.errors import StorageError
from planner.core.settings_store import SettingsStore


def test_empty_store_returns_none(db):
    assert SettingsStore().get() is None


def test_set_get_delete(db):
    store = SettingsStore()
    store.set({"mode": "strict", "schedule": [{"id": "fajr"}]})
    assert store.get() == {"mode": "strict", "schedule": [{"id": "fajr"}]}

    store.set({"mode": "downtime"})
    assert store.get() == {"mode": "downtime"}

    store.delete()
    assert store.get() is None


def test_get_returns_a_copy(db):
    store = SettingsStore()
    store.set({"meal_log": []})
    store.get()["meal_log"].append("lost")
    assert store.get() == {"meal_log": []}


def test_update_reads_merges_and_writes(db):
    store = SettingsStore()
    store.set({"mode": "strict", "custom": 1})
    updated = store.update(lambda s: {**s, "mode": "downtime"})
    assert updated == {"mode": "downtime", "custom": 1}
    assert store.get() == updated


def test_from_config_reads_storage_section():
    store = SettingsStore.from_config({"storage": {"retries": 5, "backoff_seconds": 0}})
    assert store.retries == 5
    assert store.backoff_seconds == 0


def _flaky(failures):
    calls = []

    def operation():
        calls.append(1)
        if len(calls) <= failures:
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        return "ok"
    return operation, calls


def test_retry_recovers_from_transient_failure():
    store = SettingsStore(retries=3, backoff_seconds=0)
    operation, calls = _flaky(2)
    assert store._with_retry("read", operation) == "ok"
    assert len(calls) == 3


def test_retry_gives_up_with_storage_error():
    store = SettingsStore(retries=2, backoff_seconds=0)
    operation, calls = _flaky(5)
    with pytest.raises(StorageError):
        store._with_retry("write", operation)
    assert len(calls) == 2
