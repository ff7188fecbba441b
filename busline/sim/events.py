from __future__ import annotations

"""
File: busline/sim/events.py
Purpose: Append-only log of simulation events.
Key responsibilities:
- Keep events in detection order.
- Retain a bounded informational backlog for late joiners.
"""

from collections import deque
from typing import Iterable, Iterator

from busline.sim.entities import Event


class EventLog:
    """Ordered event history owned by the engine."""
    def __init__(self, backlog: int = 1000) -> None:
        if backlog <= 0:
            raise ValueError("backlog must be > 0")
        self._events: deque[Event] = deque(maxlen=backlog)
        self.total = 0

    def extend(self, events: Iterable[Event]) -> None:
        """Append events preserving their order."""
        for event in events:
            self._events.append(event)
            self.total += 1

    def recent(self, limit: int = 50) -> list[Event]:
        """Return a copy of the last ``limit`` events, oldest first."""
        if limit <= 0:
            return []
        items = list(self._events)
        return items[-limit:]

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(list(self._events))
