from __future__ import annotations

"""
File: busline/sim/entities.py
Purpose: Core immutable dataclasses and type aliases for the bus line.
"""

from dataclasses import dataclass
from typing import Literal


VehicleState = Literal["INACTIVE", "EN_ROUTE", "STOPPED", "FINISHED"]


@dataclass(frozen=True)
class Stop:
    """A named point on the route with fixed plane coordinates."""
    id: int
    name: str
    x: int
    y: int


@dataclass(frozen=True)
class Route:
    """Immutable ordered sequence of stops traversed by every bus."""
    name: str
    stops: tuple[Stop, ...]

    def __post_init__(self) -> None:
        # Accept any sequence but always store a tuple.
        object.__setattr__(self, "stops", tuple(self.stops))
        if len(self.stops) < 2:
            raise ValueError(f"route {self.name!r} needs at least 2 stops, got {len(self.stops)}")

    def __len__(self) -> int:
        return len(self.stops)

    def stop(self, index: int) -> Stop:
        """Return the stop at ``index``; negative or past-the-end indices are errors."""
        if index < 0 or index >= len(self.stops):
            raise IndexError(f"stop index {index} out of range for route of {len(self.stops)} stops")
        return self.stops[index]

    @property
    def last_index(self) -> int:
        return len(self.stops) - 1


@dataclass(frozen=True)
class Event:
    """Timestamped record of one detected state transition."""
    timestamp: str
    message: str

    def __str__(self) -> str:
        return f"[{self.timestamp}] {self.message}"
