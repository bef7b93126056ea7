"""Clock used for timestamps and due-date urgency.

Timestamps are naive UTC, matching the ``DateTime`` columns. Functions that
need the time take a ``clock`` argument so tests can pin it.
"""
from datetime import date, datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current UTC time without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today(clock: Clock = utc_now) -> date:
    return clock().date()


class FixedClock:
    """Clock frozen at a given instant; ``advance`` moves it forward."""

    def __init__(self, at: datetime):
        self.at = at

    def __call__(self) -> datetime:
        return self.at

    def advance(self, delta) -> None:
        self.at = self.at + delta
