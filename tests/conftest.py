from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from recall.db import init_db
from recall.services.notifier import Notifier
from recall.services.reminders import build_reminder_service
from recall.store import EntryStore, ReminderStore, UserStore

T = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

SUBSCRIPTION = {
    "endpoint": "https://push.example.com/send/abc",
    "keys": {"p256dh": "key", "auth": "secret"},
}


class FakeNotifier(Notifier):
    name = "fake"
    configured = True

    def __init__(self, result: bool = True, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.sent = []

    async def send(self, subscription, payload) -> bool:
        self.sent.append((subscription, payload))
        if self.error is not None:
            raise self.error
        return self.result


class Clock:
    """Settable stand-in for now_utc()."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "test.db"
    init_db(path)
    return path


@pytest.fixture
def reminders(db_path):
    return ReminderStore(db_path)


@pytest.fixture
def users(db_path):
    return UserStore(db_path)


@pytest.fixture
def entries(db_path):
    return EntryStore(db_path)


@pytest.fixture
def user(users):
    created = users.create("ada@example.com", "Ada")
    return users.set_push_subscription(created.id, SUBSCRIPTION)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def clock():
    return Clock(T)


@pytest.fixture
def service(db_path, notifier, clock):
    svc = build_reminder_service(db_path, notifier, clock=clock, immediate_delay=0.01)
    yield svc
    svc.scheduler.cancel_all()
