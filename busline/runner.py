from __future__ import annotations

"""
File: busline/runner.py
Purpose: Fixed-period tick loop feeding the observer hub.
Key responsibilities:
- Tick the engine, snapshot the fleet and hand the update to the hub.
- Keep the cadence on a fixed schedule; suspend only between ticks.
Key entrypoints:
- SimulationRunner.run()
"""

import asyncio
import logging
import time
from typing import Callable

from busline.schemas import UpdateMessage
from busline.sim.engine import SimulationEngine
from busline.ws import ObserverHub

logger = logging.getLogger("busline.runner")


class SimulationRunner:
    """Owns the tick loop task; the only caller of ``engine.tick``."""
    def __init__(
        self,
        engine: SimulationEngine,
        hub: ObserverHub,
        tick_period_s: float,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if tick_period_s <= 0:
            raise ValueError("tick_period_s must be > 0")
        self.engine = engine
        self.hub = hub
        self.tick_period_s = tick_period_s
        self.monotonic = monotonic
        self.latest_update: UpdateMessage | None = None
        self._finished_logged = False

    async def step(self) -> UpdateMessage:
        """Run one tick and broadcast its update."""
        events = self.engine.tick()
        for event in events:
            logger.info("%s", event)
        if not self._finished_logged and self.engine.all_finished():
            self._finished_logged = True
            logger.info("all buses finished tick=%s", self.engine.tick_count)

        update = self.engine.snapshot(events)
        self.latest_update = update
        await self.hub.broadcast(update)
        return update

    async def run(self) -> None:
        """Tick forever on a fixed period."""
        logger.info(
            "tick loop started period_s=%s buses=%s route=%s",
            self.tick_period_s,
            len(self.engine.vehicles),
            self.engine.route.name,
        )
        deadline = self.monotonic()
        while True:
            await self.step()
            deadline += self.tick_period_s
            delay = deadline - self.monotonic()
            if delay < 0:
                # Overran the period; start a fresh schedule instead of bursting.
                deadline = self.monotonic()
                delay = 0.0
            await asyncio.sleep(delay)
