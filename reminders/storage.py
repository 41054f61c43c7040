from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

from time_utils import ensure_local

logger = logging.getLogger(__name__)


class Repeat(str, Enum):
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    INDEFINITE = "indefinite"

    @classmethod
    def coerce(cls, value) -> "Repeat":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning("Unknown repeat value %r, treating as once", value)
            return cls.ONCE


# Python attribute -> persisted key. Keys are shared with other clients of the store.
FIELD_NAMES = {
    "owner_id": "userId",
    "title": "title",
    "trigger_time": "triggerTime",
    "repeat": "repeat",
    "is_active": "isActive",
    "last_triggered": "lastTriggered",
}
MUTABLE_FIELDS = ("title", "trigger_time", "repeat", "is_active", "last_triggered")


@dataclass
class ReminderRecord:
    id: str
    owner_id: str
    title: str
    trigger_time: datetime
    repeat: Repeat = Repeat.ONCE
    is_active: bool = True
    last_triggered: Optional[datetime] = None

    def with_fields(self, **fields) -> "ReminderRecord":
        unknown = set(fields) - set(MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update reminder fields: {sorted(unknown)}")
        if "repeat" in fields:
            fields["repeat"] = Repeat.coerce(fields["repeat"])
        for key in ("trigger_time", "last_triggered"):
            if fields.get(key) is not None:
                fields[key] = ensure_local(fields[key])
        return replace(self, **fields)

    def to_dict(self) -> dict:
        return {
            "$id": self.id,
            "userId": self.owner_id,
            "title": self.title,
            "triggerTime": self.trigger_time.isoformat(),
            "repeat": self.repeat.value,
            "isActive": self.is_active,
            "lastTriggered": self.last_triggered.isoformat() if self.last_triggered else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ReminderRecord":
        record_id = data.get("$id") or data.get("id")
        trigger_raw = data.get("triggerTime")
        if not record_id or not trigger_raw:
            raise ValueError("Reminder payload missing $id/triggerTime fields")
        last_raw = data.get("lastTriggered")
        return cls(
            id=str(record_id),
            owner_id=str(data.get("userId") or ""),
            title=str(data.get("title") or ""),
            trigger_time=ensure_local(datetime.fromisoformat(trigger_raw)),
            repeat=Repeat.coerce(data.get("repeat") or Repeat.ONCE),
            is_active=bool(data.get("isActive", True)),
            last_triggered=ensure_local(datetime.fromisoformat(last_raw)) if last_raw else None,
        )


def load_reminders(path: Path) -> List[ReminderRecord]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8") as f:
        payload = json.load(f)
    records: List[ReminderRecord] = []
    for item in payload or []:
        try:
            records.append(ReminderRecord.from_dict(item))
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("Skipping reminder item due to parse error: %s", exc)
    return records


def save_reminders(path: Path, records: List[ReminderRecord]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    serializable = [r.to_dict() for r in records]
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(serializable, f, ensure_ascii=False, indent=2)
    tmp_path.replace(path)
