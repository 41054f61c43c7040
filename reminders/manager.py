from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum
from threading import Event, Thread
from typing import Callable, Optional, Set, Tuple

from time_utils import ensure_local, now_local, same_minute, shift_days

from .errors import StoreUnavailable
from .gateway import ReminderGateway
from .reminder_set import ReminderSet
from .sounds import AlarmPresenter
from .storage import Repeat, ReminderRecord

logger = logging.getLogger(__name__)

# Calendar days to move the trigger by; the wall-clock time is kept.
REPEAT_STEPS = {
    Repeat.DAILY: 1,
    Repeat.INDEFINITE: 1,
    Repeat.WEEKLY: 7,
}


class AlarmState(str, Enum):
    IDLE = "idle"
    RINGING = "ringing"


class AlarmRuntimeState:
    def __init__(self) -> None:
        self.state = AlarmState.IDLE
        self.ringing: Optional[ReminderRecord] = None
        self.fired: Set[Tuple[str, datetime]] = set()


def next_trigger(record: ReminderRecord) -> Tuple[datetime, bool]:
    """Trigger time and active flag a reminder should have after it is dismissed."""
    step = REPEAT_STEPS.get(record.repeat)
    if step is None:
        return record.trigger_time, False
    return shift_days(record.trigger_time, step), True


class AlarmScheduler:
    def __init__(
        self,
        gateway: ReminderGateway,
        reminders: ReminderSet,
        presenter: AlarmPresenter,
        check_interval: float = 15.0,
        detection_window: float = 60.0,
        clock: Optional[Callable[[], datetime]] = None,
        reschedule_retries: int = 0,
        on_alarm: Optional[Callable[[ReminderRecord], None]] = None,
    ):
        self.gateway = gateway
        self.reminders = reminders
        self.presenter = presenter
        self.check_interval = max(0.2, check_interval)
        self.detection_window = timedelta(seconds=detection_window)
        self.clock = clock or now_local
        self.reschedule_retries = max(0, reschedule_retries)
        self.on_alarm = on_alarm

        # One mutual-exclusion domain for the reminder set and the alarm state.
        self._lock = reminders.lock
        self._stop_event = Event()
        self._thread: Optional[Thread] = None
        self._runtime = AlarmRuntimeState()
        self._running = False
        self._closed = False

    @property
    def state(self) -> AlarmState:
        with self._lock:
            return self._runtime.state

    @property
    def current(self) -> Optional[ReminderRecord]:
        with self._lock:
            return self._runtime.ringing

    @property
    def is_ringing(self) -> bool:
        return self.state == AlarmState.RINGING

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._closed = False
            self._stop_event.clear()
            self.reminders.open()
        logger.info(
            "Alarm scheduler started for %s with %s reminders (every %.1fs)",
            self.reminders.owner_id,
            len(self.reminders),
            self.check_interval,
        )
        self._thread = Thread(target=self._loop, name="alarm-scheduler", daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        with self._lock:
            self._running = False
            self._closed = True
            self._stop_event.set()
            self.reminders.close()
        if self._thread:
            self._thread.join(timeout=2)
        self._thread = None
        self._stop_presenter()

    def poll(self, now: Optional[datetime] = None) -> Optional[ReminderRecord]:
        """Run one due-ness check; returns the reminder that started ringing, if any."""
        now = ensure_local(now) if now else self.clock()
        with self._lock:
            if self._closed or self._runtime.state == AlarmState.RINGING:
                return None
            self._forget_fired(now)
            due = self._find_due(now)
            if due is None:
                return None
            self._runtime.state = AlarmState.RINGING
            self._runtime.ringing = due
            self._runtime.fired.add((due.id, due.trigger_time))
            logger.info("Reminder %s ringing (title=%s, trigger=%s)", due.id, due.title, due.trigger_time.isoformat())
            self._present(due)
        return due

    def dismiss(self, now: Optional[datetime] = None) -> Optional[ReminderRecord]:
        """Stop the ringing alarm and write the next occurrence through the gateway.

        Returns the stored record, or None when nothing was ringing. Raises
        ``StoreUnavailable`` when the write failed; the alarm stays dismissed.
        """
        now = ensure_local(now) if now else self.clock()
        with self._lock:
            record = self._runtime.ringing
            if self._runtime.state != AlarmState.RINGING or record is None:
                logger.debug("Dismiss ignored, nothing is ringing")
                return None
            # Stop while still Ringing; the next alarm can only start after this block.
            self._stop_presenter()
            self._runtime.state = AlarmState.IDLE
            self._runtime.ringing = None

        trigger_time, is_active = next_trigger(record)
        fields = {"trigger_time": trigger_time, "is_active": is_active, "last_triggered": now}
        logger.info(
            "Reminder %s dismissed (%s), next trigger %s active=%s",
            record.id,
            record.repeat.value,
            trigger_time.isoformat(),
            is_active,
        )
        return self._reschedule(record, fields)

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:
                logger.error("Alarm poll failed", exc_info=True)
            self._stop_event.wait(self.check_interval)

    def _find_due(self, now: datetime) -> Optional[ReminderRecord]:
        for record in self.reminders.snapshot():
            if not record.is_active:
                continue
            if (record.id, record.trigger_time) in self._runtime.fired:
                continue
            if same_minute(now, record.trigger_time) and abs(now - record.trigger_time) < self.detection_window:
                return record
        return None

    def _forget_fired(self, now: datetime) -> None:
        self._runtime.fired = {
            (reminder_id, trigger) for reminder_id, trigger in self._runtime.fired
            if abs(now - trigger) < self.detection_window
        }

    def _reschedule(self, record: ReminderRecord, fields: dict) -> ReminderRecord:
        attempts = self.reschedule_retries + 1
        attempt = 0
        while True:
            attempt += 1
            try:
                return self.gateway.update(record.id, fields)
            except StoreUnavailable as exc:
                if attempt >= attempts:
                    logger.error("Reschedule of %s failed, next occurrence not saved: %s", record.id, exc)
                    raise
                logger.warning("Reschedule of %s failed (attempt %s/%s): %s", record.id, attempt, attempts, exc)

    def _present(self, record: ReminderRecord) -> None:
        try:
            self.presenter.on_alarm(record)
        except Exception:
            logger.error("Alarm presenter failed for %s", record.id, exc_info=True)
        if self.on_alarm:
            try:
                self.on_alarm(record)
            except Exception:  # pragma: no cover - callback safety
                logger.error("on_alarm callback failed", exc_info=True)

    def _stop_presenter(self) -> None:
        try:
            self.presenter.stop()
        except Exception:
            logger.error("Alarm presenter failed to stop", exc_info=True)
