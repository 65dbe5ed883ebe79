"""
Clock abstractions for deterministic behavior.

Notes
-----
Engine code does not read wall-clock time directly. Callers provide a Clock,
which keeps generated backup names and journal timestamps reproducible in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


class Clock(Protocol):
    """A source of time for deterministic behavior."""

    def now(self) -> datetime:
        """
        Return the current time.

        Returns
        -------
        datetime
            A timezone-aware datetime.
        """
        ...


@dataclass(frozen=True, slots=True)
class SystemClock:
    """Clock that returns the current local system time."""

    def now(self) -> datetime:
        """
        Return the current system time.

        Returns
        -------
        datetime
            Current local time as a timezone-aware datetime. Backup names are
            stamped in local time so operators recognise them.
        """
        return datetime.now().astimezone()


@dataclass(frozen=True, slots=True)
class FixedClock:
    """Clock that always returns a fixed time (useful for tests)."""

    fixed_time: datetime

    def now(self) -> datetime:
        if self.fixed_time.tzinfo is None:
            return self.fixed_time.astimezone()
        return self.fixed_time
