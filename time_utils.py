from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Optional


def now_local() -> datetime:
    return datetime.now().astimezone()


def ensure_local(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Attach (naive) or convert (aware) a datetime to the host wall-clock zone.

    Without ``tz`` the offset is the one the host zone has at that instant, so
    stamps on either side of a DST change keep their own offset.
    """
    if tz is None:
        return dt.astimezone()
    if dt.tzinfo:
        return dt.astimezone(tz)
    return dt.replace(tzinfo=tz)


def _follows_host_zone(dt: datetime) -> bool:
    # Fixed-offset stamps from ``astimezone()`` carry no zone rules of their own.
    if dt.tzinfo is None or getattr(dt.tzinfo, "key", None):
        return False
    return dt.utcoffset() == dt.astimezone().utcoffset()


def _rezone(reference: datetime, dt: datetime) -> datetime:
    if _follows_host_zone(reference):
        return dt.replace(tzinfo=None).astimezone()
    return dt


def at_wall_time(dt: datetime, hour: int, minute: int) -> datetime:
    """Same calendar day as ``dt`` at HH:MM:00 on the local wall clock."""
    return _rezone(dt, dt.replace(hour=hour, minute=minute, second=0, microsecond=0))


def shift_days(dt: datetime, days: int) -> datetime:
    """Move ``dt`` by whole calendar days keeping its wall-clock time across DST changes."""
    return _rezone(dt, dt + timedelta(days=days))


def same_minute(a: datetime, b: datetime) -> bool:
    """True when both timestamps share calendar date, hour and minute on a's clock."""
    if a.tzinfo and b.tzinfo:
        b = b.astimezone(a.tzinfo)
    return (
        a.date() == b.date()
        and a.hour == b.hour
        and a.minute == b.minute
    )


def format_reminder_time(dt: datetime, now: datetime) -> str:
    if _follows_host_zone(now):
        dt = dt.astimezone()
    elif dt.tzinfo and now.tzinfo:
        dt = dt.astimezone(now.tzinfo)
    time_part = dt.strftime("%H:%M")
    if dt.date() == now.date():
        return f"today at {time_part}"
    if (dt.date() - now.date()).days == 1:
        return f"tomorrow at {time_part}"
    return f"{dt.strftime('%d.%m')} at {time_part}"
