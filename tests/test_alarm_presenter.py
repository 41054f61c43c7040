import threading
import time

from reminders.sounds import SoundAlarmPresenter
from reminders.storage import ReminderRecord

from conftest import OWNER, local_now


class SilentPlayer:
    def __init__(self):
        self.loops = 0

    def start_loop(self) -> None:
        self.loops += 1

    def stop_loop(self) -> None:
        pass


class SlowSpeaker:
    available = True

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.spoken = []
        self._lock = threading.Lock()

    def speak(self, text: str) -> bool:
        with self._lock:
            self.spoken.append(text)
        time.sleep(self.seconds)
        return True


def _record(title: str) -> ReminderRecord:
    return ReminderRecord(id=title.lower(), owner_id=OWNER, title=title, trigger_time=local_now())


def test_speech_repeats_title_until_stopped():
    speaker = SlowSpeaker(0.01)
    presenter = SoundAlarmPresenter(SilentPlayer(), speaker, speech_interval=0.5)
    presenter.on_alarm(_record("Stretch"))
    time.sleep(0.8)
    presenter.stop()
    presenter._speech_thread.join(timeout=2)
    assert speaker.spoken
    assert set(speaker.spoken) == {"Reminder: Stretch"}


def test_dismissed_reminder_is_not_announced_after_next_alarm_starts():
    speaker = SlowSpeaker(0.3)
    player = SilentPlayer()
    presenter = SoundAlarmPresenter(player, speaker, speech_interval=0.5)

    presenter.on_alarm(_record("A"))
    first = presenter._speech_thread
    time.sleep(0.05)
    presenter.stop()
    presenter.on_alarm(_record("B"))
    time.sleep(1.0)
    presenter.stop()
    first.join(timeout=2)
    presenter._speech_thread.join(timeout=2)

    assert speaker.spoken.count("Reminder: A") == 1
    assert "Reminder: B" in speaker.spoken
    assert player.loops == 2
