from __future__ import annotations

"""
File: busline/main.py
Purpose: Service entrypoint for the bus-line simulation broadcaster.
Key responsibilities:
- Build the engine, observer hub and tick loop from settings.
- Start the tick loop on startup and stop it on shutdown.
- Serve observers on /ws and read-only state on /api/*.
Key entrypoints:
- startup_event()
- /ws, /health, /api/* endpoints
- main()
Config/env vars:
- BUSLINE_HOST, BUSLINE_PORT, BUSLINE_TICK_MS
- BUSLINE_DEPARTURE_INTERVAL_S, BUSLINE_DWELL_S, BUSLINE_BASE_PROGRESS, BUSLINE_JITTER
- BUSLINE_FLEET_SIZE, BUSLINE_START_TIME, BUSLINE_SIM_STEP_S, BUSLINE_SEED
- BUSLINE_SEND_TIMEOUT_S, BUSLINE_ROUTE_FILE, BUSLINE_EVENT_BACKLOG
"""

import asyncio
import logging
import random
from typing import Any

import uvicorn
from fastapi import FastAPI, Query, WebSocket

from busline.runner import SimulationRunner
from busline.settings import Settings, settings
from busline.sim.clock import SimulationClock
from busline.sim.engine import SimulationEngine
from busline.sim.events import EventLog
from busline.sim.world import build_fleet, default_route, load_route
from busline.ws import ObserverHub

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s busline %(message)s")
logger = logging.getLogger("busline")


def build_engine(cfg: Settings) -> SimulationEngine:
    """Create an engine for one run from configuration."""
    route = load_route(cfg.route_file) if cfg.route_file else default_route()
    return SimulationEngine(
        route=route,
        vehicles=build_fleet(cfg.fleet_size),
        clock=SimulationClock.starting_at(cfg.start_time, step_s=cfg.sim_step_s),
        departure_interval_s=cfg.departure_interval_s,
        dwell_s=cfg.dwell_s,
        base_progress=cfg.base_progress,
        jitter=cfg.jitter,
        rng=random.Random(cfg.seed),
        event_log=EventLog(backlog=cfg.event_backlog),
    )


app = FastAPI(title="busline", version="1.0.0")
engine = build_engine(settings)
hub = ObserverHub(send_timeout_s=settings.send_timeout_s)
runner = SimulationRunner(engine, hub, tick_period_s=settings.tick_period_s)
route_descriptor = engine.route_descriptor()
_tick_task: asyncio.Task | None = None


def _on_tick_loop_done(task: asyncio.Task) -> None:
    """Surface a crashed tick loop; it only stops on error or shutdown."""
    if task.cancelled():
        logger.info("tick loop stopped")
        return
    exc = task.exception()
    if exc is not None:
        logger.error("tick loop crashed: %r", exc, exc_info=exc)


@app.on_event("startup")
async def startup_event() -> None:
    """Start the tick loop task on service startup."""
    global _tick_task
    if _tick_task is None or _tick_task.done():
        _tick_task = asyncio.create_task(runner.run())
        _tick_task.add_done_callback(_on_tick_loop_done)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Stop the tick loop when the service exits."""
    global _tick_task
    if _tick_task is not None and not _tick_task.done():
        _tick_task.cancel()
        await asyncio.gather(_tick_task, return_exceptions=True)
    _tick_task = None


@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness/readiness endpoint."""
    return {"status": "ok"}


@app.get("/api/config")
async def config() -> dict[str, Any]:
    """Return the active simulation knobs."""
    return {
        "tick_ms": settings.tick_ms,
        "departure_interval_s": settings.departure_interval_s,
        "dwell_s": settings.dwell_s,
        "base_progress": settings.base_progress,
        "jitter": settings.jitter,
        "fleet_size": settings.fleet_size,
        "start_time": settings.start_time,
        "sim_step_s": settings.sim_step_s,
    }


@app.get("/api/route")
async def route() -> dict[str, Any]:
    """Return the route handshake payload."""
    return route_descriptor.model_dump()


@app.get("/api/snapshot")
async def snapshot() -> dict[str, Any] | None:
    """Return the most recent broadcast update, if any tick has run."""
    if runner.latest_update is None:
        return None
    return runner.latest_update.model_dump()


@app.get("/api/events")
async def events(limit: int = Query(default=50, ge=1, le=1000)) -> dict[str, Any]:
    """Return the tail of the event log (informational; not replayed on /ws)."""
    recent = engine.event_log.recent(limit)
    return {
        "total": engine.event_log.total,
        "events": [{"timestamp": e.timestamp, "message": e.message} for e in recent],
    }


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Stream the route once, then one update per tick."""
    await hub.serve(websocket, route_descriptor)


def main() -> None:
    """Run the service; a failed bind makes uvicorn exit non-zero."""
    logger.info("starting busline host=%s port=%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
