"""
Clock -- injectable source of "now".

Services and gateways stamp ``processed_at``, subscription dates and the
recurring charge run from an injected Clock, so tests pin time with
DeterministicClock instead of patching ``datetime``.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Timezone-aware UTC datetime."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """Frozen clock; moves only when told to."""

    def __init__(self, fixed_time: datetime | None = None):
        current = fixed_time or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        if current.tzinfo is None:
            raise ValueError("DeterministicClock needs an aware datetime")
        self._current = current

    def now(self) -> datetime:
        return self._current

    def advance_days(self, days: int) -> None:
        self._current += timedelta(days=days)
