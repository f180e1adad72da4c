import pytest

from planner.core.db import dispose_db, init_db
from tests.fakes import MAKKAH, FakeBackend, FakeNotifier


@pytest.fixture
def db():
    dispose_db()
    init_db(db_url="sqlite://")
    yield
    dispose_db()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def location():
    return dict(MAKKAH)
