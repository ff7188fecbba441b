"""
File: busline/settings.py
Purpose: Environment-backed configuration for the busline service.
Key responsibilities:
- Parse network, tick and fleet tuning knobs from BUSLINE_* env vars.
- Validate values that would otherwise break the tick loop.
"""

from dataclasses import dataclass
import os


def _int_env(name: str, default: int = 0) -> int:
    """Parse an integer env var with a fallback."""
    raw = os.getenv(name, "")
    if raw == "":
        return default
    return int(raw)


def _float_env(name: str, default: float = 0.0) -> float:
    """Parse a float env var with a fallback."""
    raw = os.getenv(name, "")
    if raw == "":
        return default
    return float(raw)


def _optional_int_env(name: str) -> int | None:
    """Parse an integer env var, returning None when unset."""
    raw = os.getenv(name, "")
    if raw == "":
        return None
    return int(raw)


@dataclass(frozen=True)
class Settings:
    """Service configuration parsed from environment."""
    host: str = os.getenv("BUSLINE_HOST", "0.0.0.0")
    port: int = _int_env("BUSLINE_PORT", 12345)
    tick_ms: int = _int_env("BUSLINE_TICK_MS", 50)
    departure_interval_s: float = _float_env("BUSLINE_DEPARTURE_INTERVAL_S", 15.0)
    dwell_s: float = _float_env("BUSLINE_DWELL_S", 5.0)
    base_progress: float = _float_env("BUSLINE_BASE_PROGRESS", 0.01)
    jitter: float = _float_env("BUSLINE_JITTER", 0.25)
    fleet_size: int = _int_env("BUSLINE_FLEET_SIZE", 10)
    start_time: str = os.getenv("BUSLINE_START_TIME", "05:00:00")
    sim_step_s: int = _int_env("BUSLINE_SIM_STEP_S", 1)
    seed: int | None = _optional_int_env("BUSLINE_SEED")
    send_timeout_s: float = _float_env("BUSLINE_SEND_TIMEOUT_S", 5.0)
    route_file: str = os.getenv("BUSLINE_ROUTE_FILE", "")
    event_backlog: int = _int_env("BUSLINE_EVENT_BACKLOG", 1000)

    def __post_init__(self) -> None:
        if self.tick_ms <= 0:
            raise ValueError("tick_ms must be > 0")
        if self.sim_step_s <= 0:
            raise ValueError("sim_step_s must be > 0")
        if self.fleet_size < 0:
            raise ValueError("fleet_size must be >= 0")
        if self.base_progress <= 0:
            raise ValueError("base_progress must be > 0")
        if not 0 <= self.jitter < 1:
            raise ValueError("jitter must be in [0, 1)")
        if self.departure_interval_s < 0 or self.dwell_s < 0:
            raise ValueError("departure_interval_s and dwell_s must be >= 0")
        if self.send_timeout_s <= 0:
            raise ValueError("send_timeout_s must be > 0")
        if self.event_backlog <= 0:
            raise ValueError("event_backlog must be > 0")

    @property
    def tick_period_s(self) -> float:
        return self.tick_ms / 1000.0


settings = Settings()
