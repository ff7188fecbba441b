from __future__ import annotations

"""
File: busline/schemas.py
Purpose: Pydantic models for the observer wire protocol.
Key responsibilities:
- Define the one-time RouteDescriptor handshake.
- Define the per-tick UpdateMessage (fleet snapshot + new events).
Key entrypoints:
- RouteDescriptor, UpdateMessage
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict


VehicleStateName = Literal["INACTIVE", "EN_ROUTE", "STOPPED", "FINISHED"]


class StopView(BaseModel):
    """Stop as sent to observers."""
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    x: int
    y: int


class RouteDescriptor(BaseModel):
    """Sent exactly once per connection, before any update."""
    model_config = ConfigDict(frozen=True)

    type: Literal["route"] = "route"
    name: str
    stops: tuple[StopView, ...]


class VehicleView(BaseModel):
    """Observer-visible fields of one bus."""
    model_config = ConfigDict(frozen=True)

    id: int
    color: str
    x: int
    y: int
    state: VehicleStateName


class EventView(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: str
    message: str


class UpdateMessage(BaseModel):
    """Per-tick snapshot of the whole fleet plus the tick's new events."""
    model_config = ConfigDict(frozen=True)

    type: Literal["update"] = "update"
    vehicles: tuple[VehicleView, ...]
    events: tuple[EventView, ...] = ()
