from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def today(self) -> date: ...


class SystemClock:
    def today(self) -> date:
        return datetime.now(timezone.utc).date()


@dataclass(frozen=True)
class FixedClock:
    """Clock pinned to a single calendar day, used by tests and replays."""

    fixed_day: date

    def today(self) -> date:
        return self.fixed_day


system_clock = SystemClock()


def get_clock() -> Clock:
    return system_clock
