"""
engine/clock.py
===============
Fixed-cadence simulated clock: speed-scalable and pausable.
"""

from __future__ import annotations

import math

from engine.errors import InvalidArgument


class Clock:
    """Simulated time source.

    Parameters
    ----------
    running : bool
        Initial run state.
    speed : float
        Initial speed multiplier (must be > 0).
    max_speed : float
        Multipliers above this value are clamped.
    """

    def __init__(self, running: bool = True, speed: float = 1.0, max_speed: float = 10.0) -> None:
        self.max_speed = float(max_speed)
        self.now = 0.0
        self.running = bool(running)
        self.speed = 1.0
        self.set_speed(speed)

    def tick(self, delta: float) -> float:
        """Advance simulated time; return the simulated delta (0 when paused)."""
        if not self.running or delta <= 0.0:
            return 0.0
        sim_dt = float(delta) * self.speed
        self.now += sim_dt
        return sim_dt

    def set_running(self, running: bool) -> None:
        self.running = bool(running)

    def set_speed(self, multiplier: float) -> float:
        """Set the speed multiplier; return the value actually applied."""
        self.speed = validate_speed(multiplier, self.max_speed)
        return self.speed


def validate_speed(multiplier: float, max_speed: float) -> float:
    """Reject non-positive / non-finite multipliers, clamp large ones."""
    try:
        value = float(multiplier)
    except (TypeError, ValueError):
        raise InvalidArgument(f"speed multiplier must be a number, got {multiplier!r}") from None
    if not math.isfinite(value) or value <= 0.0:
        raise InvalidArgument(f"speed multiplier must be > 0, got {multiplier!r}")
    return min(value, max_speed)
