from __future__ import annotations

"""
File: busline/sim/engine.py
Purpose: Authoritative tick for the bus fleet.
Key responsibilities:
- Release buses from the terminal on a real-time stagger.
- Advance buses with jittered progress and resume them after the dwell.
- Emit events on state transitions only, in fleet order.
- Produce immutable snapshots and the route descriptor for observers.
"""

import random
import time
from typing import Callable, Iterable, Sequence

from busline.schemas import EventView, RouteDescriptor, StopView, UpdateMessage, VehicleView
from busline.sim.clock import SimulationClock
from busline.sim.entities import Event, Route, VehicleState
from busline.sim.events import EventLog
from busline.sim.vehicle import Vehicle


class SimulationEngine:
    """Single writer of buses, clock and event log."""
    def __init__(
        self,
        route: Route,
        vehicles: Sequence[Vehicle],
        clock: SimulationClock | None = None,
        departure_interval_s: float = 15.0,
        dwell_s: float = 5.0,
        base_progress: float = 0.01,
        jitter: float = 0.25,
        rng: random.Random | None = None,
        monotonic: Callable[[], float] = time.monotonic,
        event_log: EventLog | None = None,
    ) -> None:
        """Initialize the engine with the route, fleet and tuning knobs."""
        ids = [vehicle.id for vehicle in vehicles]
        if len(set(ids)) != len(ids):
            raise ValueError("vehicle ids must be unique")
        if base_progress <= 0:
            raise ValueError("base_progress must be > 0")
        if not 0 <= jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

        self.route = route
        self._vehicles = list(vehicles)
        self.clock = clock or SimulationClock()
        self.departure_interval_s = departure_interval_s
        self.dwell_s = dwell_s
        self.base_progress = base_progress
        self.jitter = jitter
        self.rng = rng or random.Random()
        self.monotonic = monotonic
        self.event_log = event_log or EventLog()

        self.tick_count = 0
        self._next_departure = 0
        self._last_departure_at: float | None = None

    @property
    def vehicles(self) -> tuple[Vehicle, ...]:
        return tuple(self._vehicles)

    def all_finished(self) -> bool:
        """Return True once every bus has completed the route."""
        return all(vehicle.state == "FINISHED" for vehicle in self._vehicles)

    def tick(self) -> list[Event]:
        """Advance the simulation by one tick and return the new events."""
        self.clock = self.clock.advance()
        stamp = self.clock.format()
        now = self.monotonic()
        events: list[Event] = []

        departed = self._release_next(now)
        if departed is not None:
            events.append(Event(stamp, f"Bus {departed.id} has started its route."))

        for vehicle in self._vehicles:
            before = vehicle.state
            if vehicle.state == "EN_ROUTE":
                vehicle.advance(self.route, self._progress_delta(), now=now)
            elif vehicle.state == "STOPPED" and self._dwell_elapsed(vehicle, now):
                vehicle.resume(self.route)

            if vehicle.state != before:
                message = self._transition_message(vehicle, before)
                if message is not None:
                    events.append(Event(stamp, message))

        self.tick_count += 1
        self.event_log.extend(events)
        return events

    def snapshot(self, events: Iterable[Event] = ()) -> UpdateMessage:
        """Return a value copy of every bus's observer-visible fields."""
        views = []
        for vehicle in self._vehicles:
            x, y = vehicle.position(self.route)
            views.append(VehicleView(id=vehicle.id, color=vehicle.color, x=int(x), y=int(y), state=vehicle.state))
        return UpdateMessage(
            vehicles=tuple(views),
            events=tuple(EventView(timestamp=e.timestamp, message=e.message) for e in events),
        )

    def route_descriptor(self) -> RouteDescriptor:
        """Return the handshake payload describing the route."""
        return RouteDescriptor(
            name=self.route.name,
            stops=tuple(StopView(id=s.id, name=s.name, x=s.x, y=s.y) for s in self.route.stops),
        )

    def _release_next(self, now: float) -> Vehicle | None:
        """Depart the next waiting bus if the stagger interval has passed."""
        if self._next_departure >= len(self._vehicles):
            return None
        if self._last_departure_at is not None and now - self._last_departure_at <= self.departure_interval_s:
            return None
        vehicle = self._vehicles[self._next_departure]
        vehicle.depart()
        self._last_departure_at = now
        self._next_departure += 1
        return vehicle

    def _progress_delta(self) -> float:
        """Base progress with per-call jitter of +/- ``jitter``."""
        if self.jitter == 0:
            return self.base_progress
        return self.base_progress * (1.0 + self.rng.uniform(-self.jitter, self.jitter))

    def _dwell_elapsed(self, vehicle: Vehicle, now: float) -> bool:
        if vehicle.stopped_at is None:
            return True
        return now - vehicle.stopped_at > self.dwell_s

    def _transition_message(self, vehicle: Vehicle, before: VehicleState) -> str | None:
        """Describe a state change, or None for transitions that are not reported."""
        if vehicle.state == "STOPPED":
            stop = vehicle.reached_stop(self.route)
            return f"Bus {vehicle.id} has arrived at stop {stop.name}."
        if vehicle.state == "EN_ROUTE" and before == "STOPPED":
            stop = self.route.stop(vehicle.current_stop_index)
            return f"Bus {vehicle.id} has left stop {stop.name}."
        if vehicle.state == "FINISHED":
            stop = vehicle.reached_stop(self.route)
            return f"Bus {vehicle.id} has finished its route at {stop.name}."
        return None
