import logging
import signal
import sys
from typing import Optional

from config import Config, load_config, setup_logging
from reminders.gateway import LocalReminderGateway
from reminders.intent_router import IntentRouter
from reminders.manager import AlarmScheduler
from reminders.reminder_set import ReminderSet
from reminders.sounds import AlarmSoundPlayer, LocalSpeaker, SoundAlarmPresenter
from reminders.storage import ReminderRecord
from time_utils import now_local

logger = logging.getLogger("whispernote")

PROMPT = "Say a reminder (or 'list reminders', 'stop'): "


def graceful_exit(signum, frame) -> None:  # pragma: no cover - signal handler
    logger.info("Shutting down (signal %s)", signum)
    raise KeyboardInterrupt()


class WhisperNoteRuntime:
    """Wires the store, reminder set, scheduler and presenter for one shared identity.

    Transcripts come from any Command Source; the stdin loop in ``run`` stands in
    for speech capture.
    """

    def __init__(self, config: Config, speaker: Optional[LocalSpeaker] = None):
        self.config = config
        self.gateway = LocalReminderGateway(
            config.reminders_path,
            page_size=config.reminder_page_size,
            timeout=config.store_timeout_s,
        )
        self.reminders = ReminderSet(self.gateway, config.user_id)
        if speaker is None and config.enable_speech:
            speaker = LocalSpeaker()
        self.presenter = SoundAlarmPresenter(
            AlarmSoundPlayer(config.alarm_sound_path),
            speaker=speaker,
            speech_interval=config.alarm_speech_interval_s,
        )
        self.scheduler = AlarmScheduler(
            gateway=self.gateway,
            reminders=self.reminders,
            presenter=self.presenter,
            check_interval=config.alarm_check_interval_ms / 1000.0,
            detection_window=config.alarm_detection_window_s,
            reschedule_retries=config.reschedule_retries,
            on_alarm=self._on_alarm,
        )
        self.intent_router = IntentRouter(self.scheduler, self.reminders, self.gateway)

    def start(self) -> None:
        logger.info("WhisperNote starting for shared user %s", self.config.user_id)
        self.scheduler.start()

    def shutdown(self) -> None:
        self.scheduler.shutdown()
        self.gateway.close()

    def handle_transcript(self, transcript: str) -> Optional[str]:
        result = self.intent_router.handle_text(transcript, now=now_local())
        if not result.handled:
            return None
        logger.info("Intent %s handled: %s", result.action, result.response_text)
        return result.response_text

    def run(self) -> None:
        while True:
            try:
                transcript = input(PROMPT)
            except EOFError:
                return
            response = self.handle_transcript(transcript)
            if response:
                print(response)

    def _on_alarm(self, record: ReminderRecord) -> None:
        print(f"\nREMINDER: {record.title} (say 'stop' to turn it off)")


def main() -> int:
    config = load_config()
    setup_logging(config.log_level)
    signal.signal(signal.SIGINT, graceful_exit)

    runtime = WhisperNoteRuntime(config)
    runtime.start()
    try:
        runtime.run()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        runtime.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
