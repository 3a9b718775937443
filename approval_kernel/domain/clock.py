"""
Clock -- injectable source of "now" for the approval services.

Request creation, vote decisions, action outcomes and ``list_overdue`` all
read the time through a ``Clock`` handed to ``ApprovalService``.  Nothing
in the kernel calls ``datetime.now()`` except ``SystemClock``.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Manually driven clock for tests.

    Time stands still between calls; deadlines and decision timestamps can
    be asserted exactly.  Moves only through ``advance``, ``tick`` or
    ``set_time``.
    """

    def __init__(self, start: datetime | None = None):
        self._current = _require_aware(start or EPOCH)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = _require_aware(time)

    def advance(self, seconds: float = 1, **delta: float) -> None:
        """Move forward by ``seconds`` plus any ``timedelta`` keywords (days=...)."""
        self._current += timedelta(seconds=seconds, **delta)

    def tick(self) -> datetime:
        self.advance()
        return self._current


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError(f"Clock time must be timezone-aware: {value!r}")
    return value.astimezone(timezone.utc)
