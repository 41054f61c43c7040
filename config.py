import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

SHARED_USER_ID = "692f2fac2c7455a23e01"


def _get_env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip() in {"1", "true", "True", "yes", "YES", "y"}


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _get_env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


@dataclass
class Config:
    user_id: str
    reminders_path: Path
    alarm_sound_path: Path
    alarm_check_interval_ms: int
    alarm_detection_window_s: float
    alarm_speech_interval_s: float
    reminder_page_size: int
    store_timeout_s: float
    reschedule_retries: int
    enable_speech: bool
    debug: bool
    log_level: str


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    user_id = os.getenv("WHISPERNOTE_USER_ID") or SHARED_USER_ID
    reminders_path = Path(os.getenv("REMINDER_STORAGE_PATH", "data/reminders.json"))
    alarm_sound_path = Path(os.getenv("ALARM_SOUND_PATH", "data/alarm.wav"))
    alarm_check_interval_ms = _get_env_int("ALARM_CHECK_INTERVAL_MS", 15000)
    alarm_detection_window_s = _get_env_float("ALARM_DETECTION_WINDOW_S", 60.0)
    alarm_speech_interval_s = _get_env_float("ALARM_SPEECH_INTERVAL_S", 4.0)
    reminder_page_size = _get_env_int("REMINDER_PAGE_SIZE", 100)
    store_timeout_s = _get_env_float("STORE_TIMEOUT_S", 5.0)
    reschedule_retries = _get_env_int("RESCHEDULE_RETRIES", 0)
    enable_speech = _get_env_bool("ENABLE_SPEECH", True)
    debug = _get_env_bool("DEBUG", False)
    log_level = os.getenv("LOG_LEVEL", "DEBUG" if debug else "INFO").upper()

    if reminder_page_size < 1:
        raise ValueError("REMINDER_PAGE_SIZE must be positive")
    if reschedule_retries < 0:
        logging.warning("RESCHEDULE_RETRIES is negative (%s), using 0", reschedule_retries)
        reschedule_retries = 0

    return Config(
        user_id=user_id,
        reminders_path=reminders_path,
        alarm_sound_path=alarm_sound_path,
        alarm_check_interval_ms=alarm_check_interval_ms,
        alarm_detection_window_s=alarm_detection_window_s,
        alarm_speech_interval_s=alarm_speech_interval_s,
        reminder_page_size=reminder_page_size,
        store_timeout_s=store_timeout_s,
        reschedule_retries=reschedule_retries,
        enable_speech=enable_speech,
        debug=debug,
        log_level=log_level,
    )


def setup_logging(log_level: str = "INFO") -> None:
    logs_dir = Path("logs")
    logs_dir.mkdir(exist_ok=True)

    log_path = logs_dir / "whispernote.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[file_handler, console_handler],
    )
