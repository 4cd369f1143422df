"""Clock adapters."""

from datetime import date

from domain.ports import Clock


class SystemClock(Clock):
    """Local date of the running process."""

    def today(self) -> date:
        return date.today()


class FixedClock(Clock):
    """Always returns the same date. Used by tests and replays."""

    def __init__(self, fixed: date):
        self.fixed = fixed

    def today(self) -> date:
        return self.fixed
