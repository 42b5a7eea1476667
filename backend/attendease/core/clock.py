"""
Clock used by every temporal booking guard.

Routes receive a Clock through FastAPI dependency injection and pass
`clock.now()` down to the services, so tests can freeze or move time.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock:
    def now(self) -> datetime:
        return utcnow()


class FrozenClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, at: Optional[datetime] = None):
        self.current = ensure_utc(at) if at else utcnow()

    def now(self) -> datetime:
        return self.current

    def set(self, at: datetime) -> None:
        self.current = ensure_utc(at)

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


_system_clock = Clock()


def get_clock() -> Clock:
    return _system_clock
