from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from queue import Queue
from threading import Lock, Thread
from typing import Callable, Dict, List, Optional

from time_utils import ensure_local

from .errors import ReminderNotFound, StoreUnavailable, SubscriptionDropped
from .storage import Repeat, ReminderRecord, load_reminders, save_reminders

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


class EventKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ReminderEvent:
    kind: EventKind
    record: ReminderRecord


EventCallback = Callable[[ReminderEvent], None]
DropCallback = Callable[[SubscriptionDropped], None]


class Subscription:
    """Ordered delivery of store events to one consumer.

    With ``threaded=True`` events are queued and delivered from a dedicated
    thread in the order they were published; otherwise they are delivered
    inline on the publishing thread.
    """

    def __init__(
        self,
        owner_id: str,
        callback: EventCallback,
        on_drop: Optional[DropCallback] = None,
        on_close: Optional[Callable[["Subscription"], None]] = None,
        threaded: bool = True,
    ):
        self.owner_id = owner_id
        self._callback = callback
        self._on_drop = on_drop
        self._on_close = on_close
        self._closed = False
        self._lock = Lock()
        self._queue: "Queue[Optional[object]]" = Queue()
        self._thread: Optional[Thread] = None
        if threaded:
            self._thread = Thread(target=self._dispatch_loop, name="reminder-events", daemon=True)
            self._thread.start()

    @property
    def active(self) -> bool:
        return not self._closed

    def publish(self, event: ReminderEvent) -> None:
        if self._closed:
            return
        if self._thread:
            self._queue.put(event)
        else:
            self._deliver(event)

    def drop(self, reason: str) -> None:
        """End the stream from the store side; the consumer is told via ``on_drop``."""
        if not self._close():
            return
        error = SubscriptionDropped(reason)
        if self._thread:
            self._queue.put(error)
        else:
            self._notify_drop(error)

    def unsubscribe(self) -> None:
        if self._close() and self._thread:
            self._queue.put(None)

    def _close(self) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._closed = True
        if self._on_close:
            self._on_close(self)
        return True

    def _dispatch_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                return
            if isinstance(item, SubscriptionDropped):
                self._notify_drop(item)
                return
            if self._closed:
                continue
            self._deliver(item)

    def _deliver(self, event) -> None:
        try:
            self._callback(event)
        except Exception:
            logger.error("Reminder event callback failed for %s", event, exc_info=True)

    def _notify_drop(self, error: SubscriptionDropped) -> None:
        logger.warning("Reminder subscription for %s dropped: %s", self.owner_id, error)
        if self._on_drop:
            try:
                self._on_drop(error)
            except Exception:
                logger.error("Subscription drop handler failed", exc_info=True)


class ReminderGateway(ABC):
    """Contract with the reminder store.

    ``create``/``update``/``fetch`` raise ``StoreUnavailable``; ``list`` and
    ``delete`` never raise.
    """

    page_size: int = DEFAULT_PAGE_SIZE

    @abstractmethod
    def create(self, owner_id: str, title: str, trigger_time: datetime, repeat: Repeat = Repeat.ONCE) -> ReminderRecord:
        ...

    @abstractmethod
    def fetch(self, owner_id: str) -> List[ReminderRecord]:
        ...

    @abstractmethod
    def update(self, reminder_id: str, fields: dict) -> ReminderRecord:
        ...

    @abstractmethod
    def delete(self, reminder_id: str) -> bool:
        ...

    @abstractmethod
    def subscribe(
        self,
        owner_id: str,
        callback: EventCallback,
        on_drop: Optional[DropCallback] = None,
    ) -> Subscription:
        ...

    def list(self, owner_id: str) -> List[ReminderRecord]:
        try:
            return self.fetch(owner_id)
        except StoreUnavailable as exc:
            logger.error("Error fetching reminders for %s: %s", owner_id, exc)
            return []

    def toggle(self, reminder_id: str, current_status: bool) -> ReminderRecord:
        return self.update(reminder_id, {"is_active": not current_status})


class LocalReminderGateway(ReminderGateway):
    """JSON-file reminder store publishing create/update/delete to live subscriptions.

    Subscriptions observe the whole collection, like a shared realtime channel;
    consumers filter events by owner.
    """

    def __init__(
        self,
        storage_path: Path,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: float = 5.0,
        threaded_delivery: bool = True,
    ):
        self.storage_path = Path(storage_path)
        self.page_size = max(1, page_size)
        self.timeout = timeout
        self.threaded_delivery = threaded_delivery

        self._lock = Lock()
        self._subs_lock = Lock()
        self._subscriptions: List[Subscription] = []
        self._records: Dict[str, ReminderRecord] = {}
        self._loaded = False

    def create(self, owner_id: str, title: str, trigger_time: datetime, repeat: Repeat = Repeat.ONCE) -> ReminderRecord:
        title = title.strip()
        if not title:
            raise ValueError("Reminder title must not be empty")
        record = ReminderRecord(
            id=uuid.uuid4().hex[:20],
            owner_id=owner_id,
            title=title,
            trigger_time=ensure_local(trigger_time),
            repeat=Repeat.coerce(repeat),
            is_active=True,
            last_triggered=None,
        )
        with self._store():
            self._records[record.id] = record
            self._persist(rollback=lambda: self._records.pop(record.id, None))
        logger.info("Reminder %s created for %s at %s (%s)", record.id, owner_id, record.trigger_time.isoformat(), record.repeat.value)
        self._publish(ReminderEvent(EventKind.CREATE, record))
        return record

    def fetch(self, owner_id: str) -> List[ReminderRecord]:
        with self._store():
            records = [r for r in self._records.values() if r.owner_id == owner_id]
        records.sort(key=lambda r: r.trigger_time)
        return records[: self.page_size]

    def update(self, reminder_id: str, fields: dict) -> ReminderRecord:
        with self._store():
            previous = self._records.get(reminder_id)
            if previous is None:
                raise ReminderNotFound(reminder_id)
            updated = previous.with_fields(**fields)
            self._records[reminder_id] = updated

            def rollback() -> None:
                self._records[reminder_id] = previous

            self._persist(rollback=rollback)
        logger.info("Reminder %s updated: %s", reminder_id, sorted(fields))
        self._publish(ReminderEvent(EventKind.UPDATE, updated))
        return updated

    def delete(self, reminder_id: str) -> bool:
        try:
            with self._store():
                removed = self._records.pop(reminder_id, None)
                if removed is None:
                    raise ReminderNotFound(reminder_id)

                def rollback() -> None:
                    self._records[reminder_id] = removed

                self._persist(rollback=rollback)
        except StoreUnavailable as exc:
            logger.error("Error deleting reminder %s: %s", reminder_id, exc)
            return False
        logger.info("Reminder %s deleted", reminder_id)
        self._publish(ReminderEvent(EventKind.DELETE, removed))
        return True

    def subscribe(
        self,
        owner_id: str,
        callback: EventCallback,
        on_drop: Optional[DropCallback] = None,
    ) -> Subscription:
        subscription = Subscription(
            owner_id,
            callback,
            on_drop=on_drop,
            on_close=self._forget,
            threaded=self.threaded_delivery,
        )
        with self._subs_lock:
            self._subscriptions.append(subscription)
        logger.debug("Subscribed %s to reminder events", owner_id)
        return subscription

    def close(self, reason: str = "store closed") -> None:
        """Drop every live subscription, as a lost realtime connection would."""
        with self._subs_lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.drop(reason)

    def _forget(self, subscription: Subscription) -> None:
        with self._subs_lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def _publish(self, event: ReminderEvent) -> None:
        with self._subs_lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.publish(event)

    def _store(self):
        if not self._lock.acquire(timeout=self.timeout):
            raise StoreUnavailable(f"Reminder store busy for more than {self.timeout}s")
        return _StoreSession(self)

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        try:
            records = load_reminders(self.storage_path)
        except (OSError, ValueError) as exc:
            raise StoreUnavailable(f"Failed to load reminders from {self.storage_path}: {exc}") from exc
        self._records = {r.id: r for r in records}
        self._loaded = True
        logger.info("Loaded %s reminders from %s", len(self._records), self.storage_path)

    def _persist(self, rollback: Callable[[], None]) -> None:
        try:
            save_reminders(self.storage_path, list(self._records.values()))
        except OSError as exc:
            rollback()
            raise StoreUnavailable(f"Failed to save reminders to {self.storage_path}: {exc}") from exc


class _StoreSession:
    """Holds the store lock for one operation, loading the file on first use."""

    def __init__(self, gateway: LocalReminderGateway):
        self._gateway = gateway

    def __enter__(self) -> LocalReminderGateway:
        try:
            self._gateway._ensure_loaded()
        except BaseException:
            self._gateway._lock.release()
            raise
        return self._gateway

    def __exit__(self, exc_type, exc, tb) -> None:
        self._gateway._lock.release()
