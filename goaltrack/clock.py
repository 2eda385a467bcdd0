"""Wall-clock source used by goal metrics and lifecycle timestamps."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock:
    """Supplies the current time.

    Every derived metric and lifecycle timestamp reads "now" through a clock
    so it can be frozen in tests.
    """

    def now(self) -> datetime:
        return utcnow()


system_clock = Clock()


def get_clock() -> Clock:
    """FastAPI dependency returning the process clock."""
    return system_clock
