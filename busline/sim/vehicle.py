from __future__ import annotations

"""
File: busline/sim/vehicle.py
Purpose: Bus state machine driven by the simulation engine.
Key responsibilities:
- Track segment indices, segment progress and lifecycle state.
- Derive the plane position from (route, indices, progress, state).
- Reject transitions that are not valid from the current state.
"""

from dataclasses import dataclass
import time

from busline.sim.entities import Route, Stop, VehicleState


@dataclass
class Vehicle:
    """A single bus. Only the engine's tick mutates it."""
    id: int
    color: str
    current_stop_index: int = 0
    next_stop_index: int = 1
    progress: float = 0.0
    state: VehicleState = "INACTIVE"
    stopped_at: float | None = None

    def depart(self) -> None:
        """Leave the terminal: INACTIVE -> EN_ROUTE."""
        if self.state != "INACTIVE":
            raise ValueError(f"bus {self.id} cannot depart from state {self.state}")
        self.state = "EN_ROUTE"
        self.progress = 0.0

    def advance(self, route: Route, progress_delta: float, now: float | None = None) -> None:
        """Move along the current segment; no-op unless EN_ROUTE.

        Reaching the destination clamps progress to exactly 1.0 and records
        the dwell start. Arriving at the final stop finishes the route
        immediately, without a dwell.
        """
        if self.state != "EN_ROUTE":
            return
        if progress_delta < 0:
            raise ValueError(f"progress_delta must be >= 0, got {progress_delta}")

        self.progress += progress_delta
        if self.progress < 1.0:
            return

        self.progress = 1.0
        self.stopped_at = time.monotonic() if now is None else now
        if self.next_stop_index >= route.last_index:
            self.current_stop_index = route.last_index
            self.next_stop_index = len(route)
            self.state = "FINISHED"
        else:
            self.state = "STOPPED"

    def resume(self, route: Route) -> None:
        """Pull out of the stop towards the next one (or finish)."""
        if self.state != "STOPPED":
            raise ValueError(f"bus {self.id} cannot resume from state {self.state}")
        self.current_stop_index = self.next_stop_index
        self.next_stop_index += 1
        self.stopped_at = None
        if self.next_stop_index >= len(route):
            self.state = "FINISHED"
            return
        self.state = "EN_ROUTE"
        self.progress = 0.0

    def position(self, route: Route) -> tuple[float, float]:
        """Derived (x, y) on the plane."""
        if self.state == "FINISHED":
            terminal = route.stop(self.current_stop_index)
            return float(terminal.x), float(terminal.y)

        origin = route.stop(self.current_stop_index)
        destination = route.stop(self.next_stop_index)
        if self.progress >= 1.0:
            return float(destination.x), float(destination.y)
        x = origin.x + (destination.x - origin.x) * self.progress
        y = origin.y + (destination.y - origin.y) * self.progress
        return x, y

    def reached_stop(self, route: Route) -> Stop | None:
        """The stop the bus is standing at, if any."""
        if self.state == "STOPPED":
            return route.stop(self.next_stop_index)
        if self.state == "FINISHED":
            return route.stop(self.current_stop_index)
        return None
