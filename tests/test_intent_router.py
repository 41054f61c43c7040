from datetime import timedelta

import pytest

from reminders.intent_router import IntentRouter
from reminders.storage import Repeat

from conftest import OWNER, local_now


@pytest.fixture
def router(gateway, reminder_set, scheduler):
    return IntentRouter(scheduler, reminder_set, gateway)


def test_add_creates_reminder(router, reminder_set):
    result = router.handle_text("Take pills every day at 8pm", now=local_now())
    assert result.handled
    assert result.action == "add"
    assert result.reminder.title == "Take pills"
    assert result.reminder.repeat == Repeat.DAILY
    assert result.reminder.owner_id == OWNER
    assert "Take pills" in result.response_text
    assert [r.title for r in reminder_set.snapshot()] == ["Take pills"]


def test_missing_title_asks_again(router, reminder_set):
    result = router.handle_text("remind me at 7pm", now=local_now())
    assert result.action == "retry"
    assert result.response_text == "No title heard."
    assert len(reminder_set) == 0


def test_blank_transcript_is_not_handled(router):
    assert router.handle_text("   ", now=local_now()).handled is False


def test_list_reminders(router, gateway):
    now = local_now()
    gateway.create(OWNER, "Stretch", now + timedelta(hours=1), Repeat.INDEFINITE)
    gateway.create(OWNER, "Call mom", now + timedelta(hours=2))
    result = router.handle_text("list reminders", now=now)
    assert result.action == "list"
    assert "1) Stretch" in result.response_text
    assert "until off" in result.response_text
    assert "2) Call mom" in result.response_text


def test_list_when_empty(router):
    assert router.handle_text("show my reminders", now=local_now()).response_text == "No reminders."


def test_remove_by_index(router, gateway, reminder_set):
    now = local_now()
    gateway.create(OWNER, "Stretch", now + timedelta(hours=1))
    gateway.create(OWNER, "Call mom", now + timedelta(hours=2))
    result = router.handle_text("delete reminder 2", now=now)
    assert result.action == "remove"
    assert [r.title for r in reminder_set.snapshot()] == ["Stretch"]


def test_remove_unknown_index(router, gateway):
    gateway.create(OWNER, "Stretch", local_now())
    result = router.handle_text("delete reminder 5", now=local_now())
    assert result.response_text == "Couldn't find that reminder."


def test_pause_and_resume(router, gateway, reminder_set):
    record = gateway.create(OWNER, "Stretch", local_now() + timedelta(hours=1))
    router.handle_text("pause the first reminder", now=local_now())
    assert reminder_set.get(record.id).is_active is False
    router.handle_text("resume reminder 1", now=local_now())
    assert reminder_set.get(record.id).is_active is True


def test_stop_dismisses_ringing_alarm(router, gateway, scheduler, reminder_set):
    record = gateway.create(OWNER, "Stretch", local_now())
    scheduler.poll()
    result = router.handle_text("stop", now=local_now())
    assert result.action == "stop"
    assert not scheduler.is_ringing
    assert reminder_set.get(record.id).is_active is False


def test_stop_when_nothing_rings(router):
    result = router.handle_text("stop the alarm", now=local_now())
    assert result.response_text == "Nothing is ringing right now."


def test_new_reminder_while_ringing_is_not_a_stop(router, gateway, scheduler):
    gateway.create(OWNER, "Stretch", local_now())
    scheduler.poll()
    result = router.handle_text("remind me to stop smoking at 9pm", now=local_now())
    assert result.action == "add"
    assert result.reminder.title == "Stop smoking"
    assert scheduler.is_ringing


def test_until_i_stop_while_ringing_adds_reminder(router, gateway, scheduler):
    gateway.create(OWNER, "Stretch", local_now())
    scheduler.poll()
    result = router.handle_text("take pills until I stop at 9pm", now=local_now())
    assert result.action == "add"
    assert result.reminder.repeat == Repeat.INDEFINITE
    assert result.reminder.title == "Take pills"
    assert scheduler.is_ringing


def test_remove_without_index_picks_next_upcoming(router, gateway, reminder_set):
    now = local_now()
    past = gateway.create(OWNER, "Old one", now - timedelta(hours=3))
    gateway.toggle(past.id, True)
    upcoming = gateway.create(OWNER, "Dentist", now + timedelta(hours=1))
    result = router.handle_text("delete next reminder", now=now)
    assert result.reminder.id == upcoming.id
    assert [r.id for r in reminder_set.snapshot()] == [past.id]


def test_resume_without_index_picks_a_paused_reminder(router, gateway, reminder_set):
    now = local_now()
    gateway.create(OWNER, "Stretch", now + timedelta(hours=1))
    paused = gateway.create(OWNER, "Dentist", now + timedelta(hours=2))
    gateway.toggle(paused.id, True)
    router.handle_text("resume the reminder", now=now)
    assert reminder_set.get(paused.id).is_active is True
