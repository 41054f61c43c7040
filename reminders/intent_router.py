from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from time_utils import format_reminder_time

from .errors import StoreUnavailable
from .gateway import ReminderGateway
from .manager import AlarmScheduler
from .parser import REPEAT_PATTERN, parse_command
from .reminder_set import ReminderSet
from .storage import Repeat, ReminderRecord

logger = logging.getLogger(__name__)

STOP_WORDS = ("stop", "dismiss", "turn off", "shut up", "enough", "silence")
LIST_WORDS = ("list", "show", "what are", "which")
REMOVE_WORDS = ("delete", "remove", "cancel")
PAUSE_WORDS = ("pause", "disable", "deactivate", "turn off")
RESUME_WORDS = ("resume", "enable", "activate", "turn on")

NUMBER_WORDS = {
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
}


@dataclass
class IntentResult:
    handled: bool
    response_text: Optional[str] = None
    action: Optional[str] = None
    transcript: Optional[str] = None
    reminder: Optional[ReminderRecord] = None


class IntentRouter:
    def __init__(self, scheduler: AlarmScheduler, reminders: ReminderSet, gateway: ReminderGateway):
        self.scheduler = scheduler
        self.reminders = reminders
        self.gateway = gateway

    def handle_text(self, text: str, now: datetime, transcript: Optional[str] = None) -> IntentResult:
        cleaned = text.strip()
        transcript = transcript or cleaned
        if not cleaned:
            return IntentResult(handled=False, transcript=transcript)
        lower = cleaned.lower()
        is_new_reminder = lower.startswith("remind me")
        mentions_reminder = "reminder" in lower and not is_new_reminder
        mentions_alarm = "alarm" in lower
        # "until i stop" is a repetition phrase, not a stop command.
        command_words = REPEAT_PATTERN.sub("", lower)

        if not is_new_reminder and _has_any(command_words, STOP_WORDS) and (self.scheduler.is_ringing or mentions_alarm):
            return self._stop(now, transcript)

        if mentions_reminder:
            if _has_any(lower, LIST_WORDS):
                return self._list(now, transcript)
            if _has_any(lower, REMOVE_WORDS):
                return self._remove(lower, now, transcript)
            if _has_any(lower, PAUSE_WORDS):
                return self._set_active(lower, False, now, transcript)
            if _has_any(lower, RESUME_WORDS):
                return self._set_active(lower, True, now, transcript)

        return self._add(cleaned, now, transcript)

    def _add(self, text: str, now: datetime, transcript: str) -> IntentResult:
        parsed = parse_command(text, now=now)
        logger.info("Reminder command parsed: %s", parsed)
        if not parsed.is_valid:
            return IntentResult(handled=True, response_text=parsed.error, action="retry", transcript=transcript)
        try:
            record = self.gateway.create(
                self.reminders.owner_id, parsed.title, parsed.trigger_time, parsed.repeat
            )
        except StoreUnavailable:
            logger.error("Failed to save reminder %r", parsed.title, exc_info=True)
            return IntentResult(handled=True, response_text="Error saving.", action="add", transcript=transcript)
        resp = f'Reminder set: "{record.title}" {format_reminder_time(record.trigger_time, now)}'
        if record.repeat != Repeat.ONCE:
            resp += f" ({_repeat_label(record.repeat)})"
        return IntentResult(handled=True, response_text=resp + ".", action="add", transcript=transcript, reminder=record)

    def _list(self, now: datetime, transcript: str) -> IntentResult:
        records = self.reminders.snapshot()
        if not records:
            resp = "No reminders."
        else:
            parts = []
            for idx, record in enumerate(records, start=1):
                status = "" if record.is_active else " [off]"
                repeat = "" if record.repeat == Repeat.ONCE else f" ({_repeat_label(record.repeat)})"
                parts.append(
                    f"{idx}) {record.title} {format_reminder_time(record.trigger_time, now)}{repeat}{status}"
                )
            resp = "Your reminders:\n" + "\n".join(parts)
        return IntentResult(handled=True, response_text=resp, action="list", transcript=transcript)

    def _remove(self, lower: str, now: datetime, transcript: str) -> IntentResult:
        record = self._pick(lower, now)
        if record is None:
            return IntentResult(handled=True, response_text="Couldn't find that reminder.", action="remove", transcript=transcript)
        if self.gateway.delete(record.id):
            resp = f'Deleted "{record.title}" ({format_reminder_time(record.trigger_time, now)}).'
        else:
            resp = "Couldn't delete that reminder, try again."
        return IntentResult(handled=True, response_text=resp, action="remove", transcript=transcript, reminder=record)

    def _set_active(self, lower: str, active: bool, now: datetime, transcript: str) -> IntentResult:
        action = "resume" if active else "pause"
        record = self._pick(lower, now, upcoming_active=not active)
        if record is None:
            return IntentResult(handled=True, response_text="Couldn't find that reminder.", action=action, transcript=transcript)
        if record.is_active == active:
            resp = f'"{record.title}" is already {"on" if active else "off"}.'
            return IntentResult(handled=True, response_text=resp, action=action, transcript=transcript, reminder=record)
        try:
            updated = self.gateway.toggle(record.id, record.is_active)
        except StoreUnavailable:
            logger.error("Error toggling reminder %s", record.id, exc_info=True)
            return IntentResult(handled=True, response_text="Couldn't update that reminder.", action=action, transcript=transcript)
        resp = f'Turned {"on" if updated.is_active else "off"} "{updated.title}".'
        return IntentResult(handled=True, response_text=resp, action=action, transcript=transcript, reminder=updated)

    def _stop(self, now: datetime, transcript: str) -> IntentResult:
        current = self.scheduler.current
        if current is None:
            return IntentResult(handled=True, response_text="Nothing is ringing right now.", action="stop", transcript=transcript)
        try:
            self.scheduler.dismiss(now)
            resp = f'Stopped "{current.title}".'
        except StoreUnavailable:
            resp = f'Stopped "{current.title}", but the next occurrence was not saved.'
        return IntentResult(handled=True, response_text=resp, action="stop", transcript=transcript, reminder=current)

    def _pick(self, lower: str, now: datetime, upcoming_active: bool = True) -> Optional[ReminderRecord]:
        """Reminder named by a 1-based index, else the next upcoming one with the given active flag."""
        records = self.reminders.snapshot()
        if not records:
            return None
        index = _extract_index(lower)
        if index is None:
            upcoming = [r for r in records if r.is_active == upcoming_active and r.trigger_time > now]
            return upcoming[0] if upcoming else records[0]
        if index < 1 or index > len(records):
            return None
        return records[index - 1]


def _has_any(text: str, words) -> bool:
    return any(re.search(rf"\b{re.escape(word)}\b", text) for word in words)


def _extract_index(text: str) -> Optional[int]:
    number_match = re.search(r"(\d+)", text)
    if number_match:
        return int(number_match.group(1))
    for word, idx in NUMBER_WORDS.items():
        if re.search(rf"\b{word}\b", text):
            return idx
    return None


def _repeat_label(repeat: Repeat) -> str:
    return "until off" if repeat == Repeat.INDEFINITE else repeat.value
