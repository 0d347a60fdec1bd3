#!/usr/bin/env python3
"""
engine/policy.py
================
Tunable network, signal, flow and optimizer parameters for the grid
traffic engine.  Every constant lives in the frozen :class:`EnginePolicy`
dataclass so that experiments can swap policies without touching code.

Also provides three stateless helpers:

* :func:`congestion_multiplier`: linear speed penalty with a crawl floor.
* :func:`clamp`: bound a value to ``[low, high]``.
* :func:`default_durations`: initial per-phase durations for a policy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import config


@dataclass(frozen=True)
class EnginePolicy:
    """Immutable bag of every tunable engine parameter.

    Groups: grid geometry, jam detection, signal timing, vehicle flow,
    optimizer, engine housekeeping.
    """

    # ── Grid geometry ─────────────────────────────────────────────────────
    grid_rows: int = config.DEFAULT_GRID_ROWS
    """Number of intersection rows."""

    grid_cols: int = config.DEFAULT_GRID_COLS
    """Number of intersection columns."""

    segment_length_m: float = 150.0
    """Length of a segment between two neighbouring intersections."""

    boundary_length_m: float = 100.0
    """Length of inlet / outlet segments at the network edge."""

    segment_capacity: int = 8
    """Maximum concurrent vehicles on a segment before it counts as full."""

    speed_limit_mps: float = 14.0
    """Posted speed limit (clear weather) on every segment."""

    # ── Jam detection ─────────────────────────────────────────────────────
    jam_enter_ratio: float = 0.85
    """Occupancy ratio at or above which a segment starts counting toward a jam."""

    jam_exit_ratio: float = 0.5
    """Occupancy ratio below which a jammed segment starts counting toward clearing."""

    jam_enter_ticks: int = 5
    """Consecutive ticks above the enter ratio before a jam is declared."""

    jam_exit_ticks: int = 8
    """Consecutive ticks below the exit ratio before a jam is cleared."""

    # ── Signal timing (simulated seconds) ─────────────────────────────────
    green_s: float = 12.0
    """Initial green duration per axis."""

    yellow_s: float = 3.0
    """Yellow duration per axis."""

    all_red_s: float = 2.0
    """All-red clearance interval between axes."""

    min_green_s: float = 5.0
    """Optimizer floor for a green phase."""

    max_green_s: float = 45.0
    """Optimizer ceiling for a green phase."""

    emergency_row: Optional[int] = None
    """Grid row forming the emergency corridor; ``None`` picks the middle row."""

    # ── Vehicle flow ──────────────────────────────────────────────────────
    arrival_rate_per_s: float = 0.12
    """Mean vehicle arrivals per second on each inlet (Poisson)."""

    max_vehicles: int = 400
    """Global cap on simultaneously active vehicles."""

    base_speed_min_mps: float = 10.0
    """Lower bound of a vehicle's free-flow speed."""

    base_speed_max_mps: float = 15.0
    """Upper bound of a vehicle's free-flow speed."""

    congestion_penalty: float = 0.8
    """Fraction of speed lost at 100 % occupancy (linear in the ratio)."""

    min_crawl_fraction: float = 0.15
    """Speed never drops below this fraction of the free-flow speed."""

    max_block_wait_s: Optional[float] = 10.0
    """Green time a vehicle waits behind a full segment before entering it
    anyway (over capacity); ``None`` makes capacity a hard bound."""

    throughput_window_s: float = 60.0
    """Sliding window used for the throughput statistic."""

    # ── Optimizer ─────────────────────────────────────────────────────────
    optimizer_iterations: int = 60
    """Annealing steps per intersection."""

    optimizer_initial_temperature: float = 0.08
    """Starting temperature for worse-candidate acceptance."""

    optimizer_cooling: float = 0.92
    """Geometric cooling factor applied after every step."""

    optimizer_max_step_s: float = 4.0
    """Largest single perturbation of a green duration."""

    optimizer_cycle_weight: float = 0.15
    """Weight of the cycle-length penalty in the congestion cost."""

    auto_optimize_interval_s: Optional[float] = None
    """Run the optimizer inside the tick every N simulated seconds."""

    # ── Engine housekeeping ───────────────────────────────────────────────
    tick_dt_s: float = 0.1
    """Wall-clock delta fed to the clock by default."""

    max_simulation_speed: float = 10.0
    """Speed multipliers above this value are clamped."""

    log_capacity: int = config.DEFAULT_LOG_CAPACITY
    """Ring-buffer size of the event log."""

    start_running: bool = True
    """Whether the clock runs from the first tick."""

    strict_invariants: bool = False
    """Raise on internal invariant violations instead of logging them."""

    def green_bounds(self) -> Tuple[float, float]:
        return (self.min_green_s, self.max_green_s)

    def corridor_row(self) -> int:
        """Row used as the emergency corridor."""
        if self.emergency_row is None:
            return self.grid_rows // 2
        return max(0, min(self.grid_rows - 1, int(self.emergency_row)))


def clamp(value: float, low: float, high: float) -> float:
    """Bound *value* to the closed interval ``[low, high]``."""
    return max(low, min(high, value))


def congestion_multiplier(ratio: float, policy: EnginePolicy) -> float:
    """Speed multiplier for a segment filled to *ratio* of its capacity.

    Decreases linearly with the ratio and never goes below
    ``policy.min_crawl_fraction``, so vehicles always keep moving unless
    a signal holds them.
    """
    penalty = policy.congestion_penalty * max(0.0, float(ratio))
    return max(policy.min_crawl_fraction, 1.0 - penalty)


def default_durations(policy: EnginePolicy) -> Dict[str, float]:
    """Initial phase-name → seconds table for one intersection."""
    return {
        "NS_GREEN": policy.green_s,
        "NS_YELLOW": policy.yellow_s,
        "EW_GREEN": policy.green_s,
        "EW_YELLOW": policy.yellow_s,
        "ALL_RED": policy.all_red_s,
    }
