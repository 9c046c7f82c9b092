from __future__ import annotations

from datetime import UTC, datetime, timedelta

__all__ = ["SystemClock", "FixedClock"]


class SystemClock:
    def now(self) -> datetime:  # noqa: D401
        return datetime.now(UTC)


class FixedClock:
    """Clock frozen at ``fixed``; ``advance`` moves it forward (tests, replays)."""

    def __init__(self, fixed: datetime) -> None:
        self._fixed = fixed

    def now(self) -> datetime:  # noqa: D401
        return self._fixed

    def advance(self, **delta: float) -> datetime:
        self._fixed = self._fixed + timedelta(**delta)
        return self._fixed
