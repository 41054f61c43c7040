from __future__ import annotations

import logging
from threading import RLock
from typing import List, Optional

from .errors import StoreUnavailable, SubscriptionDropped
from .gateway import EventKind, ReminderEvent, ReminderGateway, Subscription
from .storage import MUTABLE_FIELDS, ReminderRecord

logger = logging.getLogger(__name__)


def _by_trigger_time(record: ReminderRecord):
    return record.trigger_time


class ReminderSet:
    """In-memory projection of one owner's reminders, ordered by trigger time.

    Fed by full refreshes and by the store's event stream. All mutations go
    through ``refresh`` and ``apply_event`` under ``lock``, which callers may
    share to serialize with their own state.
    """

    def __init__(self, gateway: ReminderGateway, owner_id: str, lock: Optional[RLock] = None):
        self.gateway = gateway
        self.lock = lock or RLock()
        self._owner_id = owner_id
        self._records: List[ReminderRecord] = []
        self._subscription: Optional[Subscription] = None
        self._closed = False

    @property
    def owner_id(self) -> str:
        return self._owner_id

    def open(self) -> None:
        """Subscribe to live events, then load the full set."""
        with self.lock:
            self._closed = False
            self._connect()

    def close(self) -> None:
        with self.lock:
            self._closed = True
            subscription, self._subscription = self._subscription, None
            if subscription:
                subscription.unsubscribe()

    def refresh(self, owner_id: Optional[str] = None) -> bool:
        target = owner_id or self._owner_id
        with self.lock:
            try:
                records = self.gateway.fetch(target)
            except StoreUnavailable as exc:
                logger.error("Failed to refresh reminders for %s, keeping %s cached: %s", target, len(self._records), exc)
                return False
            self._owner_id = target
            self._records = sorted(records, key=_by_trigger_time)
        logger.info("Fetched %s reminders for %s", len(records), target)
        return True

    def apply_event(self, event: ReminderEvent) -> bool:
        """Apply one store event; returns True when the set changed."""
        record = event.record
        with self.lock:
            if record.owner_id != self._owner_id:
                logger.debug("Ignoring %s event for %s (owner %s)", event.kind.value, record.id, record.owner_id)
                return False
            if event.kind == EventKind.CREATE:
                return self._insert(record)
            if event.kind == EventKind.UPDATE:
                return self._update(record)
            if event.kind == EventKind.DELETE:
                return self._remove(record.id)
        logger.warning("Unknown reminder event kind %s", event.kind)
        return False

    def snapshot(self) -> List[ReminderRecord]:
        with self.lock:
            return list(self._records)

    def get(self, reminder_id: str) -> Optional[ReminderRecord]:
        with self.lock:
            for record in self._records:
                if record.id == reminder_id:
                    return record
        return None

    def __len__(self) -> int:
        with self.lock:
            return len(self._records)

    def _insert(self, record: ReminderRecord) -> bool:
        if any(r.id == record.id for r in self._records):
            return False
        self._records.append(record)
        self._records.sort(key=_by_trigger_time)
        return True

    def _update(self, record: ReminderRecord) -> bool:
        for idx, current in enumerate(self._records):
            if current.id == record.id:
                fields = {name: getattr(record, name) for name in MUTABLE_FIELDS}
                self._records[idx] = current.with_fields(**fields)
                self._records.sort(key=_by_trigger_time)
                return True
        logger.debug("Update for unknown reminder %s ignored", record.id)
        return False

    def _remove(self, reminder_id: str) -> bool:
        remaining = [r for r in self._records if r.id != reminder_id]
        changed = len(remaining) != len(self._records)
        self._records = remaining
        return changed

    def _on_event(self, event: ReminderEvent) -> None:
        with self.lock:
            if self._closed:
                return
            self.apply_event(event)

    def _connect(self) -> None:
        if self._subscription is None or not self._subscription.active:
            self._subscription = self.gateway.subscribe(
                self._owner_id, self._on_event, on_drop=self._on_dropped
            )
        self.refresh()

    def _on_dropped(self, error: SubscriptionDropped) -> None:
        with self.lock:
            if self._closed:
                return
            logger.warning("Reminder stream dropped (%s), resubscribing with a full refresh", error)
            self._subscription = None
            self._connect()
