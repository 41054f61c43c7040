from __future__ import annotations

import logging
import wave
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Event, Lock, Thread
from typing import TYPE_CHECKING, Optional

import numpy as np

from .errors import PresenterUnavailable

if TYPE_CHECKING:  # pragma: no cover
    from .storage import ReminderRecord

try:
    import winsound
except ImportError:  # pragma: no cover - non-Windows fallback
    winsound = None  # type: ignore

try:  # Optional local TTS for spoken reminders
    import pyttsx3
except ImportError:  # pragma: no cover - optional
    pyttsx3 = None  # type: ignore

logger = logging.getLogger(__name__)


class AlarmPresenter(ABC):
    """Renders the ringing reminder. The scheduler calls ``on_alarm`` once per
    ringing episode and ``stop`` when it is dismissed or torn down."""

    @abstractmethod
    def on_alarm(self, record: "ReminderRecord") -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...


def ensure_alarm_sound(path: Path, duration_seconds: float = 1.5) -> None:
    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    sample_rate = 24000
    freq = 880.0
    amplitude = 0.4
    t = np.arange(int(duration_seconds * sample_rate)) / sample_rate
    samples = (32767 * amplitude * np.sin(2 * np.pi * freq * t)).astype("<i2")
    with wave.open(str(path), "w") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(samples.tobytes())
    logger.info("Generated default alarm sound at %s", path)


class AlarmSoundPlayer:
    def __init__(self, sound_path: Path):
        self.sound_path = sound_path
        self._stop_event = Event()
        self._beep_thread: Optional[Thread] = None

    def start_loop(self) -> None:
        try:
            ensure_alarm_sound(self.sound_path)
        except OSError as exc:
            raise PresenterUnavailable(f"Cannot prepare alarm sound {self.sound_path}: {exc}") from exc
        self._stop_event.clear()
        if winsound:
            try:
                winsound.PlaySound(
                    str(self.sound_path),
                    winsound.SND_FILENAME | winsound.SND_LOOP | winsound.SND_ASYNC,
                )
                return
            except RuntimeError:
                logger.warning("winsound.PlaySound failed, falling back to beep loop")

        if self._beep_thread and self._beep_thread.is_alive():
            return
        self._beep_thread = Thread(target=self._beep_loop, name="alarm-beep", daemon=True)
        self._beep_thread.start()

    def stop_loop(self) -> None:
        self._stop_event.set()
        if winsound:
            try:
                winsound.PlaySound(None, winsound.SND_PURGE)
            except RuntimeError:
                logger.debug("winsound.PlaySound purge failed")

    def _beep_loop(self) -> None:  # pragma: no cover - timing loop
        while not self._stop_event.is_set():
            if winsound:
                try:
                    winsound.Beep(880, 250)
                except RuntimeError:
                    logger.debug("winsound.Beep failed inside loop")
            else:
                logger.info("Alarm ringing...")
            self._stop_event.wait(0.75)


class LocalSpeaker:
    """Lightweight offline TTS wrapper (uses SAPI via pyttsx3 on Windows)."""

    def __init__(self, rate: int = 185):
        self._engine = None
        self._lock = Lock()
        if pyttsx3:
            try:
                self._engine = pyttsx3.init()
                self._engine.setProperty("rate", rate)
            except Exception:
                logger.warning("pyttsx3 engine unavailable, reminders will not be spoken", exc_info=True)
                self._engine = None

    @property
    def available(self) -> bool:
        return self._engine is not None

    def speak(self, text: str) -> bool:
        if not self._engine:
            return False
        with self._lock:
            try:
                self._engine.say(text)
                self._engine.runAndWait()
            except Exception:  # pragma: no cover - engine runtime errors
                logger.error("pyttsx3 failed to speak text", exc_info=True)
                return False
        return True


class SoundAlarmPresenter(AlarmPresenter):
    """Loops the alarm tone and repeats "Reminder: <title>" until stopped."""

    def __init__(
        self,
        sound_player: AlarmSoundPlayer,
        speaker: Optional[LocalSpeaker] = None,
        speech_interval: float = 4.0,
    ):
        self.sound_player = sound_player
        self.speaker = speaker
        self.speech_interval = max(0.5, speech_interval)
        # Each ringing episode gets its own stop flag.
        self._episode = Event()
        self._speech_thread: Optional[Thread] = None

    def on_alarm(self, record: "ReminderRecord") -> None:
        self._episode.set()
        episode = Event()
        self._episode = episode
        try:
            self.sound_player.start_loop()
        except PresenterUnavailable as exc:
            logger.warning("Alarm sound unavailable: %s", exc)
        if self.speaker and self.speaker.available:
            self._speech_thread = Thread(
                target=self._speech_loop,
                args=(f"Reminder: {record.title}", episode),
                name="alarm-speech",
                daemon=True,
            )
            self._speech_thread.start()

    def stop(self) -> None:
        self._episode.set()
        self.sound_player.stop_loop()

    def _speech_loop(self, text: str, episode: Event) -> None:
        while not episode.is_set():
            self.speaker.speak(text)
            episode.wait(self.speech_interval)
