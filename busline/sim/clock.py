"""Simulated time of day used to stamp events, decoupled from real time."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


_TIME_FORMAT = "%H:%M:%S"


@dataclass(frozen=True)
class SimulationClock:
    """
    Immutable simulated clock.

    The engine replaces its clock with ``clock.advance()`` once per tick, so a
    clock value never changes under anyone holding a reference to it.
    """

    seconds: int = 5 * 3600
    step_s: int = 1

    def __post_init__(self) -> None:
        if self.step_s <= 0:
            raise ValueError("step_s must be > 0")
        if self.seconds < 0:
            raise ValueError("seconds must be >= 0")

    @classmethod
    def starting_at(cls, time_of_day: str, step_s: int = 1) -> SimulationClock:
        """Build a clock from an ``HH:MM:SS`` start time."""
        parsed = datetime.strptime(time_of_day, _TIME_FORMAT)
        return cls(seconds=parsed.hour * 3600 + parsed.minute * 60 + parsed.second, step_s=step_s)

    def advance(self) -> SimulationClock:
        """Return the clock one simulated step later."""
        return SimulationClock(seconds=self.seconds + self.step_s, step_s=self.step_s)

    def format(self) -> str:
        """Format the time of day as HH:MM:SS, wrapping past midnight."""
        return (datetime.min + timedelta(seconds=self.seconds % 86400)).strftime(_TIME_FORMAT)
