"""Clock helpers.

Components take a ``clock`` callable instead of calling ``datetime.now``
directly, so tests can pin time.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a timestamp read back from storage to an aware UTC value.

    SQL providers may hand back naive datetimes; those are taken to be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class FixedClock:
    """A clock that returns a settable instant. Used by tests and simulations."""

    def __init__(self, now: datetime):
        self.now = as_utc(now)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now
