"""
Clock implementations.

Stores and the transaction manager take a clock so tests can control
created_at ordering and lock heartbeat age without sleeping.
"""

import time
from datetime import datetime, timedelta, timezone


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def time(self) -> float:
        return time.time()


class ManualClock:
    """
    Manually advanced clock.

    Starts at a fixed instant; advance() moves it forward. Useful in tests
    for ordering backups and ageing lock heartbeats.
    """

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def time(self) -> float:
        return self.current.timestamp()

    def advance(self, seconds: float = 1.0) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current
