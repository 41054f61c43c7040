from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from time_utils import at_wall_time, shift_days

from .storage import Repeat

# Priority order matters: the first category with any keyword present wins.
REPEAT_KEYWORDS = (
    (Repeat.DAILY, ("every day", "daily", "everyday")),
    (Repeat.WEEKLY, ("every week", "weekly", "everyweek")),
    (Repeat.INDEFINITE, ("until i stop", "forever", "indefinitely", "always")),
)

TIME_PATTERN = re.compile(r"\bat\s+(\d{1,2})(?::(\d{2}))?\s*(a\.?m\.?|p\.?m\.?)?(?![a-z\d])")
REPEAT_PATTERN = re.compile(
    r"(every day|daily|every week|weekly|everyday|everyweek|until i stop|forever|indefinitely|always)"
)

NO_TITLE_MESSAGE = "No title heard."


@dataclass
class ParsedCommand:
    title: str
    trigger_time: datetime
    repeat: Repeat = Repeat.ONCE
    has_explicit_time: bool = False
    raw_text: str = ""
    matched_time: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.error is None


def parse_command(text: str, now: Optional[datetime] = None) -> ParsedCommand:
    """Parse a free-form reminder phrase into title, trigger time and repetition.

    Never raises for user input. An empty title is reported through ``error``.
    """

    now = now or datetime.now().astimezone()
    lower = text.lower()
    repeat = detect_repeat(lower)

    time_match = _find_time(lower)
    if time_match is None:
        title = _capitalize(lower.strip())
        return _result(title, now, repeat, False, text, None)

    match, hour, minute, period = time_match
    hour = to_24_hour(hour, period, now)
    trigger = at_wall_time(now, hour, minute)
    if trigger < now:
        trigger = shift_days(trigger, 1)

    matched = match.group(0)
    title = lower[: match.start()] + lower[match.end() :]
    title = REPEAT_PATTERN.sub("", title)
    title = re.sub(r"^remind me to\s*", "", title)
    title = re.sub(r"^remind me\s*", "", title)
    title = _capitalize(re.sub(r"\s+", " ", title).strip())
    return _result(title, trigger, repeat, True, text, matched)


def detect_repeat(lower: str) -> Repeat:
    for repeat, keywords in REPEAT_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return repeat
    return Repeat.ONCE


def to_24_hour(hour: int, period: Optional[str], now: datetime) -> int:
    if period == "pm":
        return hour + 12 if hour < 12 else hour
    if period == "am":
        return 0 if hour == 12 else hour
    # Smart guess: a bare hour already reached this morning means the evening one.
    if hour < 12 and hour <= now.hour:
        return hour + 12
    return hour


def _find_time(lower: str) -> Optional[tuple[re.Match, int, int, Optional[str]]]:
    for match in TIME_PATTERN.finditer(lower):
        hour = int(match.group(1))
        minute = int(match.group(2)) if match.group(2) else 0
        period = match.group(3).replace(".", "") if match.group(3) else None
        if hour > 12 or minute > 59:
            continue
        return match, hour, minute, period
    return None


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def _result(
    title: str,
    trigger: datetime,
    repeat: Repeat,
    has_time: bool,
    raw_text: str,
    matched: Optional[str],
) -> ParsedCommand:
    return ParsedCommand(
        title=title,
        trigger_time=trigger,
        repeat=repeat,
        has_explicit_time=has_time,
        raw_text=raw_text,
        matched_time=matched,
        error=None if title else NO_TITLE_MESSAGE,
    )
