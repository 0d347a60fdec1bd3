"""
engine/optimizer.py
===================
"Quantum" signal-timing optimizer.

Despite the name this is a classical metaheuristic: a simulated-annealing
local search over each intersection's two green durations.  The search
starts from a greedy candidate that shifts green time toward the axis
feeding the most congested approach, perturbs one green at a time,
always keeps the better candidate and occasionally a worse one.

Invariants:

* every duration written lies in ``[min_green_s, max_green_s]``;
* only ``AUTO`` intersections are touched;
* an intersection's durations are replaced all at once or not at all.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from engine.event_log import EventLog, LogCategory
from engine.network import ControlMode, Intersection, Phase, RoadNetwork, axis_of
from engine.policy import EnginePolicy, clamp

log = logging.getLogger("engine")

_GREENS: Dict[str, Phase] = {"NS": Phase.NS_GREEN, "EW": Phase.EW_GREEN}
_JAM_PRESSURE = 0.5


@dataclass(frozen=True)
class OptimizationReport:
    """Outcome of one optimizer run."""

    applied: Tuple[int, ...] = ()
    unchanged: Tuple[int, ...] = ()
    skipped: Tuple[int, ...] = ()
    cost_before: float = 0.0
    cost_after: float = 0.0
    changes: Dict[int, Tuple[Dict[str, float], Dict[str, float]]] = field(default_factory=dict)


def axis_pressure(
    network: RoadNetwork,
    node: Intersection,
    density: Mapping[str, float],
    jammed: frozenset,
) -> Dict[str, float]:
    """Worst approach density per axis, with a bonus for jammed approaches."""
    pressure = {"NS": 0.0, "EW": 0.0}
    for arm, seg_id in node.approaches.items():
        value = density.get(seg_id, network.segments[seg_id].ratio)
        if seg_id in jammed:
            value += _JAM_PRESSURE
        axis = axis_of(arm)
        pressure[axis] = max(pressure[axis], value)
    return pressure


class QuantumOptimizer:
    """Randomised local search over green durations.

    Parameters
    ----------
    policy : EnginePolicy
        Floor / ceiling, annealing schedule and cost weights.
    rng : random.Random or None
        Injectable source so runs can be reproduced.
    """

    def __init__(self, policy: EnginePolicy, rng: Optional[random.Random] = None) -> None:
        self.policy = policy
        self._rng = rng or random.Random()
        self.runs = 0

    # ── cost model ────────────────────────────────────────────────────────

    def cycle_length(self, greens: Mapping[str, float]) -> float:
        p = self.policy
        return greens["NS"] + greens["EW"] + 2.0 * p.yellow_s + 2.0 * p.all_red_s

    def cost(self, greens: Mapping[str, float], pressure: Mapping[str, float]) -> float:
        """Congestion cost: each axis' pressure times its red share, plus a
        penalty proportional to the cycle length."""
        p = self.policy
        cycle = self.cycle_length(greens)
        reference = 2.0 * p.max_green_s + 2.0 * p.yellow_s + 2.0 * p.all_red_s
        red_cost = sum(pressure[axis] * (1.0 - greens[axis] / cycle) for axis in ("NS", "EW"))
        return red_cost + p.optimizer_cycle_weight * cycle / reference

    # ── search ────────────────────────────────────────────────────────────

    def _bounded(self, greens: Mapping[str, float]) -> Dict[str, float]:
        lo, hi = self.policy.green_bounds()
        return {axis: round(clamp(value, lo, hi), 1) for axis, value in greens.items()}

    def greedy_candidate(self, greens: Mapping[str, float], pressure: Mapping[str, float]) -> Dict[str, float]:
        """Lengthen the busier axis and shorten the other by the same step."""
        busy, quiet = ("NS", "EW") if pressure["NS"] >= pressure["EW"] else ("EW", "NS")
        top = max(pressure.values())
        if top <= 0.0:
            return self._bounded(greens)
        shift = self.policy.optimizer_max_step_s * (pressure[busy] - pressure[quiet]) / top
        return self._bounded({busy: greens[busy] + shift, quiet: greens[quiet] - shift})

    def search(self, greens: Mapping[str, float], pressure: Mapping[str, float]) -> Tuple[Dict[str, float], float]:
        """Anneal from the greedy candidate; return the best greens and cost."""
        p = self.policy
        current = self.greedy_candidate(greens, pressure)
        current_cost = self.cost(current, pressure)
        best, best_cost = dict(current), current_cost
        temperature = p.optimizer_initial_temperature
        for _ in range(max(0, p.optimizer_iterations)):
            axis = self._rng.choice(("NS", "EW"))
            candidate = dict(current)
            candidate[axis] += self._rng.uniform(-p.optimizer_max_step_s, p.optimizer_max_step_s)
            candidate = self._bounded(candidate)
            candidate_cost = self.cost(candidate, pressure)
            delta = candidate_cost - current_cost
            if delta < 0.0 or (
                temperature > 1e-9 and self._rng.random() < math.exp(-delta / temperature)
            ):
                current, current_cost = candidate, candidate_cost
                if current_cost < best_cost:
                    best, best_cost = dict(current), current_cost
            temperature *= p.optimizer_cooling
        return best, best_cost

    # ── application ───────────────────────────────────────────────────────

    def optimize(
        self,
        network: RoadNetwork,
        density: Mapping[str, float],
        jammed: frozenset,
        now: float = 0.0,
        event_log: Optional[EventLog] = None,
    ) -> OptimizationReport:
        """Retune every ``AUTO`` intersection from the latest stats."""
        self.runs += 1
        lo, hi = self.policy.green_bounds()
        applied, unchanged, skipped = [], [], []
        changes: Dict[int, Tuple[Dict[str, float], Dict[str, float]]] = {}
        total_before = total_after = 0.0

        for node in network.intersections.values():
            if node.mode is not ControlMode.AUTO:
                skipped.append(node.id)
                self._log(event_log, now,
                          f"Intersection {node.id} skipped ({node.mode.value} control)")
                continue

            greens = {axis: node.durations[phase] for axis, phase in _GREENS.items()}
            pressure = axis_pressure(network, node, density, jammed)
            before = self.cost(self._bounded(greens), pressure)
            best, after = self.search(greens, pressure)

            if after >= before - 1e-9 or best == greens:
                unchanged.append(node.id)
                total_before += before
                total_after += before
                continue
            if not all(lo <= value <= hi for value in best.values()):
                # _bounded already clamps; keep the old timings if that ever fails
                log.error("optimizer candidate out of bounds for %d: %s", node.id, best)
                unchanged.append(node.id)
                continue

            new_durations = dict(node.durations)
            for axis, phase in _GREENS.items():
                new_durations[phase] = best[axis]
            node.durations = new_durations

            applied.append(node.id)
            changes[node.id] = ({a: greens[a] for a in greens}, dict(best))
            total_before += before
            total_after += after
            self._log(event_log, now,
                      f"Intersection {node.id}: NS_GREEN {greens['NS']:.1f}s -> {best['NS']:.1f}s, "
                      f"EW_GREEN {greens['EW']:.1f}s -> {best['EW']:.1f}s")

        self._log(event_log, now,
                  f"Quantum optimization #{self.runs}: {len(applied)} retuned, "
                  f"{len(unchanged)} unchanged, {len(skipped)} skipped "
                  f"(cost {total_before:.3f} -> {total_after:.3f})")
        return OptimizationReport(
            applied=tuple(applied),
            unchanged=tuple(unchanged),
            skipped=tuple(skipped),
            cost_before=total_before,
            cost_after=total_after,
            changes=changes,
        )

    @staticmethod
    def _log(event_log: Optional[EventLog], now: float, message: str) -> None:
        log.debug("optimizer: %s", message)
        if event_log is not None:
            event_log.append(now, LogCategory.OPTIMIZATION, message)
