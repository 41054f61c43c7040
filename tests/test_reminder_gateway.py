import json
import time
from datetime import timedelta

import pytest

from reminders.errors import ReminderNotFound, StoreUnavailable
from reminders.gateway import EventKind, LocalReminderGateway
from reminders.storage import Repeat

from conftest import OWNER, OTHER_OWNER, local_now


def test_create_persists_and_publishes(gateway, tmp_path):
    events = []
    gateway.subscribe(OWNER, events.append)
    record = gateway.create(OWNER, "Take pills", local_now(), Repeat.DAILY)

    assert record.is_active
    assert record.last_triggered is None
    assert [(e.kind, e.record.id) for e in events] == [(EventKind.CREATE, record.id)]

    stored = json.loads((tmp_path / "reminders.json").read_text(encoding="utf-8"))
    assert stored[0]["userId"] == OWNER
    assert stored[0]["repeat"] == "daily"


def test_create_rejects_empty_title(gateway):
    with pytest.raises(ValueError):
        gateway.create(OWNER, "   ", local_now())


def test_list_is_sorted_scoped_and_capped(tmp_path):
    gateway = LocalReminderGateway(tmp_path / "reminders.json", page_size=2, threaded_delivery=False)
    now = local_now()
    gateway.create(OWNER, "Third", now + timedelta(hours=3))
    gateway.create(OWNER, "First", now + timedelta(hours=1))
    gateway.create(OWNER, "Second", now + timedelta(hours=2))
    gateway.create(OTHER_OWNER, "Not mine", now)

    assert [r.title for r in gateway.list(OWNER)] == ["First", "Second"]


def test_reload_from_disk(gateway, tmp_path):
    record = gateway.create(OWNER, "Water plants", local_now())
    reopened = LocalReminderGateway(tmp_path / "reminders.json", threaded_delivery=False)
    assert [r.id for r in reopened.list(OWNER)] == [record.id]


def test_list_fails_soft_on_corrupt_store(tmp_path):
    path = tmp_path / "reminders.json"
    path.write_text("{not json", encoding="utf-8")
    gateway = LocalReminderGateway(path, threaded_delivery=False)

    with pytest.raises(StoreUnavailable):
        gateway.fetch(OWNER)
    assert gateway.list(OWNER) == []


def test_update_and_toggle(gateway):
    events = []
    record = gateway.create(OWNER, "Stretch", local_now())
    gateway.subscribe(OWNER, events.append)

    updated = gateway.toggle(record.id, record.is_active)
    assert updated.is_active is False
    assert events[-1].kind == EventKind.UPDATE
    assert events[-1].record.is_active is False


def test_update_missing_raises(gateway):
    with pytest.raises(ReminderNotFound):
        gateway.update("missing", {"is_active": False})


def test_delete_never_raises(gateway):
    events = []
    record = gateway.create(OWNER, "Stretch", local_now())
    gateway.subscribe(OWNER, events.append)

    assert gateway.delete(record.id) is True
    assert gateway.delete(record.id) is False
    assert [e.kind for e in events] == [EventKind.DELETE]


def test_unsubscribe_is_idempotent_and_stops_delivery(gateway):
    events = []
    subscription = gateway.subscribe(OWNER, events.append)
    subscription.unsubscribe()
    subscription.unsubscribe()
    gateway.create(OWNER, "Stretch", local_now())
    assert events == []
    assert not subscription.active


def test_close_drops_subscriptions(gateway):
    dropped = []
    subscription = gateway.subscribe(OWNER, lambda event: None, on_drop=dropped.append)
    gateway.close()
    assert len(dropped) == 1
    assert not subscription.active


def test_busy_store_times_out(tmp_path):
    gateway = LocalReminderGateway(tmp_path / "reminders.json", timeout=0.05, threaded_delivery=False)
    gateway._lock.acquire()
    try:
        with pytest.raises(StoreUnavailable):
            gateway.create(OWNER, "Blocked", local_now())
        assert gateway.delete("anything") is False
    finally:
        gateway._lock.release()


def test_threaded_delivery_keeps_order(tmp_path):
    gateway = LocalReminderGateway(tmp_path / "reminders.json", threaded_delivery=True)
    events = []
    subscription = gateway.subscribe(OWNER, events.append)

    record = gateway.create(OWNER, "Stretch", local_now())
    gateway.update(record.id, {"title": "Stretch more"})
    gateway.delete(record.id)

    deadline = time.monotonic() + 2
    while len(events) < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    subscription.unsubscribe()

    assert [e.kind for e in events] == [EventKind.CREATE, EventKind.UPDATE, EventKind.DELETE]
