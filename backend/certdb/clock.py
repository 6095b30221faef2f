from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Iterator, Optional, Protocol


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Clock(Protocol):
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return _utcnow()

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """
    A clock pinned to one instant.

    Used by tests and by jobs that must evaluate a whole batch against the
    same "now".
    """

    def __init__(self, instant: datetime | date) -> None:
        if isinstance(instant, datetime):
            self._now = instant if instant.tzinfo else instant.replace(tzinfo=timezone.utc)
        else:
            self._now = datetime(instant.year, instant.month, instant.day, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.date()


system_clock = SystemClock()


def session_clock(db) -> Clock:
    """Clock injected into a session via ``session.info["clock"]``, else the system clock."""
    info = getattr(db, "info", None) or {}
    return info.get("clock") or system_clock


def resolve_clock(clock: Optional[Clock], db=None) -> Clock:
    if clock is not None:
        return clock
    if db is not None:
        return session_clock(db)
    return system_clock


@contextmanager
def using_clock(db, clock: Optional[Clock]) -> Iterator[None]:
    """Install ``clock`` on the session for the duration of the block."""
    if clock is None:
        yield
        return
    missing = object()
    previous = db.info.get("clock", missing)
    db.info["clock"] = clock
    try:
        yield
    finally:
        if previous is missing:
            db.info.pop("clock", None)
        else:
            db.info["clock"] = previous
