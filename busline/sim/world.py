from __future__ import annotations

"""
File: busline/sim/world.py
Purpose: Route and fleet construction for a simulation run.
Key responsibilities:
- Provide the default San José - Paso Canoas route.
- Load a route from a JSON file.
- Build a fleet with cycling colours.
"""

import json
from pathlib import Path
from typing import Any

from busline.sim.entities import Route, Stop
from busline.sim.vehicle import Vehicle


DEFAULT_ROUTE_NAME = "Ruta San José - Paso Canoas"

DEFAULT_STOPS: list[tuple[int, str, int, int]] = [
    (1, "Terminal Tica Bus San José", 1100, 150),
    (2, "Barrio Los Ángeles", 1050, 180),
    (3, "Autopista José María Castro Madriz", 1000, 210),
    (4, "Escobal", 950, 240),
    (5, "Soda el Higueron", 900, 270),
    (6, "Carretera Pacífica Fernández Oreamuno #2", 850, 300),
    (7, "Pochotal", 800, 330),
    (8, "Carretera Pacífica Fernández Oreamuno", 750, 360),
    (9, "Pocares", 700, 390),
    (10, "Llamarón", 650, 420),
    (11, "Portalón", 600, 450),
    (12, "Guapil", 550, 480),
    (13, "Tica Bus Uvita", 500, 510),
    (14, "Ojo de Agua", 450, 540),
    (15, "Olla Cero", 400, 570),
    (16, "Parada Río Esquinas", 350, 600),
    (17, "Kilometro 30", 300, 630),
    (18, "Sucursal Dos Pinos, Río Claro", 250, 660),
    (19, "Terminal municipal ciudad Nelly", 200, 690),
    (20, "Terminal de transporte", 150, 720),
]

# red, blue, green, orange, magenta, cyan, pink, purple, brown, gray
FLEET_COLORS = [
    "#FF0000",
    "#0000FF",
    "#00FF00",
    "#FFC800",
    "#FF00FF",
    "#00FFFF",
    "#FFAFAF",
    "#800080",
    "#8B4513",
    "#808080",
]


def default_route() -> Route:
    """Return the built-in 20-stop route."""
    return Route(
        name=DEFAULT_ROUTE_NAME,
        stops=tuple(Stop(id=sid, name=name, x=x, y=y) for sid, name, x, y in DEFAULT_STOPS),
    )


def route_from_dict(data: dict[str, Any]) -> Route:
    """Build a route from ``{"name": ..., "stops": [{"id", "name", "x", "y"}, ...]}``."""
    if "name" not in data or "stops" not in data:
        raise ValueError("route must define 'name' and 'stops'")
    stops = []
    for raw in data["stops"]:
        try:
            stops.append(Stop(id=int(raw["id"]), name=str(raw["name"]), x=int(raw["x"]), y=int(raw["y"])))
        except (KeyError, TypeError) as exc:
            raise ValueError(f"invalid stop entry: {raw!r}") from exc
    ids = [stop.id for stop in stops]
    if len(set(ids)) != len(ids):
        raise ValueError("stop ids must be unique")
    return Route(name=str(data["name"]), stops=tuple(stops))


def load_route(path: str | Path) -> Route:
    """Load a route from a UTF-8 JSON file."""
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"route file {path} must contain a JSON object")
    return route_from_dict(data)


def build_fleet(count: int, colors: list[str] | None = None) -> list[Vehicle]:
    """Create ``count`` INACTIVE buses with ids 1..count at the first stop."""
    if count < 0:
        raise ValueError("count must be >= 0")
    palette = colors or FLEET_COLORS
    return [Vehicle(id=idx, color=palette[(idx - 1) % len(palette)]) for idx in range(1, count + 1)]
