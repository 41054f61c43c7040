import time
from datetime import datetime

import pytest

from reminders.errors import PresenterUnavailable
from reminders.gateway import LocalReminderGateway
from reminders.manager import AlarmScheduler
from reminders.reminder_set import ReminderSet
from reminders.sounds import AlarmPresenter

OWNER = "692f2fac2c7455a23e01"
OTHER_OWNER = "someone-else"


def local_now() -> datetime:
    return datetime(2025, 3, 10, 9, 0).astimezone()


class FakePresenter(AlarmPresenter):
    def __init__(self, fail: bool = False):
        self.alarms = []
        self.stops = 0
        self.fail = fail

    def on_alarm(self, record) -> None:
        self.alarms.append(record)
        if self.fail:
            raise PresenterUnavailable("no audio device")

    def stop(self) -> None:
        self.stops += 1


@pytest.fixture
def eastern_dst(monkeypatch):
    """Host clock on US Eastern time; DST starts 2025-03-09 02:00."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is POSIX only")
    monkeypatch.setenv("TZ", "EST5EDT,M3.2.0,M11.1.0")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.fixture
def gateway(tmp_path):
    return LocalReminderGateway(tmp_path / "reminders.json", threaded_delivery=False)


@pytest.fixture
def reminder_set(gateway):
    reminders = ReminderSet(gateway, OWNER)
    reminders.open()
    yield reminders
    reminders.close()


@pytest.fixture
def presenter():
    return FakePresenter()


@pytest.fixture
def scheduler(gateway, reminder_set, presenter):
    return AlarmScheduler(gateway, reminder_set, presenter, clock=local_now)
