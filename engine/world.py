#!/usr/bin/env python3
"""
engine/world.py
===============
The engine facade.

:class:`TrafficEngine` composes clock, weather, road network, signal
controller, vehicle flow model, stats aggregator, optimizer and event
log into one :meth:`~TrafficEngine.tick` function and one action
surface.  Actions validate their arguments immediately (raising
:class:`~engine.errors.InvalidArgument` without touching state) and are
then queued as intents on an :class:`~bus.intent_bus.IntentBus`; the
tick drains that queue at its boundary, so no action ever lands in the
middle of a tick.  Every tick ends by publishing an immutable
:class:`~engine.snapshot.EngineSnapshot`.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Callable, Dict, Optional, Union

import numpy as np

import config
from bus.intent_bus import IntentBus
from engine.clock import Clock, validate_speed
from engine.errors import InvalidArgument, InvariantGuard, InvariantViolation
from engine.event_log import EventLog, LogCategory
from engine.network import Phase, RoadNetwork, grid_network
from engine.optimizer import OptimizationReport, QuantumOptimizer
from engine.policy import EnginePolicy
from engine.signals import SignalController, parse_phase
from engine.snapshot import EngineSnapshot, IntersectionView, VehicleView
from engine.stats import Stats, compute_stats
from engine.vehicles import VehicleFlowModel
from engine.weather import Weather, WeatherModel, parse_weather

log = logging.getLogger("engine")


class TrafficEngine:
    """Grid traffic simulation with signal optimization.

    Parameters
    ----------
    policy : EnginePolicy or None
        Tunable constants; uses defaults when *None*.
    seed : int or None
        Seed for both random sources (routes/optimizer and arrivals).
    network : RoadNetwork or None
        The road layout.  Uses :func:`~engine.network.grid_network`
        when *None*.
    rng : random.Random or None
        Overrides the seeded route / optimizer random source.
    bus : IntentBus or None
        Intent transport; a private one is created when *None*.
    """

    def __init__(
        self,
        policy: Optional[EnginePolicy] = None,
        seed: Optional[int] = None,
        network: Optional[RoadNetwork] = None,
        rng: Optional[random.Random] = None,
        bus: Optional[IntentBus] = None,
    ) -> None:
        self.policy = policy or EnginePolicy()
        self._rng = rng or random.Random(seed)
        self._arrivals = np.random.default_rng(seed)
        self.event_log = EventLog(self.policy.log_capacity)
        self.guard = InvariantGuard(self.policy.strict_invariants, self._record_violation)
        self.clock = Clock(
            running=self.policy.start_running,
            speed=1.0,
            max_speed=self.policy.max_simulation_speed,
        )
        self.weather = WeatherModel()

        if network is None:
            network = grid_network(self.policy, guard=self.guard, event_log=self.event_log)
        else:
            network.guard = self.guard
            network.event_log = self.event_log
        self.network = network
        self.network.apply_weather(self.weather.speed_multiplier)

        self.signals = SignalController(self.network, self.policy, self.event_log)
        self.flow = VehicleFlowModel(
            self.network,
            self.signals,
            self.weather,
            policy=self.policy,
            rng=self._rng,
            arrivals=self._arrivals,
            guard=self.guard,
        )
        self.optimizer = QuantumOptimizer(self.policy, self._rng)
        self.bus = bus or IntentBus()
        self.last_report: Optional[OptimizationReport] = None
        self.intent_errors = 0

        self._tick_count = 0
        self._last_auto_optimize = 0.0
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "set_running": self._apply_running,
            "set_speed": self._apply_speed,
            "set_weather": self._apply_weather,
            "set_emergency": self._apply_emergency,
            "optimize": self._apply_optimize,
            "manual": self._apply_manual,
            "auto": self._apply_auto,
        }

        count, cols, rows = self.network.get_grid_info()
        self.event_log.append(
            0.0, LogCategory.INFO,
            f"Simulation initialised: {rows}x{cols} grid, {count} intersections, "
            f"{len(self.network.segments)} segments",
        )
        self.stats: Stats = compute_stats(self.network, self.flow, self.signals, self.clock.now)
        self._snapshot = self._build_snapshot()

    # ── state ─────────────────────────────────────────────────────────────

    def snapshot(self) -> EngineSnapshot:
        """Latest immutable state, published at the end of the last tick."""
        return self._snapshot

    @property
    def tick_count(self) -> int:
        return self._tick_count

    # ── actions (validated now, applied at the next tick boundary) ───────

    def set_is_running(self, running: bool) -> None:
        self._submit("set_running", value=bool(running))

    def set_simulation_speed(self, speed: float) -> None:
        """Queue a speed change; non-positive speeds raise ``InvalidArgument``."""
        self._submit("set_speed", value=validate_speed(speed, self.policy.max_simulation_speed))

    def set_weather(self, weather: Union[str, Weather]) -> None:
        self._submit("set_weather", value=parse_weather(weather).value)

    def toggle_emergency(self, active: bool) -> None:
        self._submit("set_emergency", value=bool(active))

    def apply_quantum_optimization(self) -> None:
        self._submit("optimize")

    def set_light_state_manually(self, intersection_id: int, phase: Union[str, Phase]) -> None:
        int_id = self.signals.validate_id(intersection_id)
        self._submit("manual", intersection=int_id, phase=parse_phase(phase).value)

    def return_to_auto(self, intersection_id: int) -> None:
        self._submit("auto", intersection=self.signals.validate_id(intersection_id))

    def _submit(self, action: str, **params: Any) -> None:
        self.bus.publish(config.INTENT_TOPIC, "engine", {"action": action, **params})

    # ── tick ──────────────────────────────────────────────────────────────

    def tick(self, delta: Optional[float] = None) -> EngineSnapshot:
        """Apply queued intents, advance one tick and publish a snapshot.

        *delta* is wall-clock seconds (defaults to ``policy.tick_dt_s``);
        the clock scales it by the simulation speed.  While paused only
        the intents are applied.
        """
        self._drain_intents()
        delta = self.policy.tick_dt_s if delta is None else float(delta)
        sim_dt = self.clock.tick(delta)
        if sim_dt > 0.0:
            now = self.clock.now
            self.flow.step(sim_dt, now)
            self.network.apply_weather(self.weather.speed_multiplier)
            self.network.update_jams(now, self.weather.jam_multiplier)
            self.signals.advance(sim_dt)
            self._maybe_auto_optimize(now)
            self._tick_count += 1
        self.stats = compute_stats(self.network, self.flow, self.signals, self.clock.now)
        self._snapshot = self._build_snapshot()
        return self._snapshot

    def run(self, ticks: int, delta: Optional[float] = None) -> EngineSnapshot:
        """Convenience loop: call :meth:`tick` *ticks* times."""
        snapshot = self._snapshot
        for _ in range(max(0, int(ticks))):
            snapshot = self.tick(delta)
        return snapshot

    def _maybe_auto_optimize(self, now: float) -> None:
        interval = self.policy.auto_optimize_interval_s
        if interval is None or interval <= 0.0:
            return
        if now - self._last_auto_optimize >= interval:
            self._last_auto_optimize = now
            self.stats = compute_stats(self.network, self.flow, self.signals, now)
            self._run_optimizer()

    # ── intent application ────────────────────────────────────────────────

    def _drain_intents(self) -> None:
        for msg in self.bus.poll(config.INTENT_TOPIC):
            payload = msg.payload
            handler = self._handlers.get(msg.action)
            if handler is None:
                log.warning("ignoring unknown intent %r from %s", payload, msg.sender)
                continue
            try:
                handler(payload)
            except InvalidArgument:
                # Validated on submit; only a stale or hand-crafted message lands here
                log.exception("rejected intent %r", payload)
            except InvariantViolation:
                raise
            except Exception:
                # Already dequeued: keep applying the rest of this batch
                self.intent_errors += 1
                log.exception("intent %r from %s failed", payload, msg.sender)

    def _apply_running(self, payload: Dict[str, Any]) -> None:
        running = bool(payload["value"])
        if running == self.clock.running:
            return
        self.clock.set_running(running)
        self.event_log.append(self.clock.now, LogCategory.INFO,
                              "Simulation resumed" if running else "Simulation paused")

    def _apply_speed(self, payload: Dict[str, Any]) -> None:
        old = self.clock.speed
        new = self.clock.set_speed(payload["value"])
        if new != old:
            self.event_log.append(self.clock.now, LogCategory.INFO,
                                  f"Simulation speed {old:g}x -> {new:g}x")

    def _apply_weather(self, payload: Dict[str, Any]) -> None:
        if self.weather.set(payload["value"]):
            self.network.apply_weather(self.weather.speed_multiplier)
            self.event_log.append(
                self.clock.now, LogCategory.INFO,
                f"Weather changed to {self.weather.state.value} "
                f"(speed x{self.weather.speed_multiplier:g}, jam risk x{self.weather.jam_multiplier:g})",
            )

    def _apply_emergency(self, payload: Dict[str, Any]) -> None:
        self.signals.set_emergency(payload["value"], self.clock.now)

    def _apply_optimize(self, payload: Dict[str, Any]) -> None:
        self._run_optimizer()

    def _apply_manual(self, payload: Dict[str, Any]) -> None:
        self.signals.set_manual(payload["intersection"], payload["phase"], self.clock.now)

    def _apply_auto(self, payload: Dict[str, Any]) -> None:
        self.signals.return_to_auto(payload["intersection"], self.clock.now)

    def _run_optimizer(self) -> OptimizationReport:
        self.last_report = self.optimizer.optimize(
            self.network,
            self.stats.segment_density,
            self.stats.jammed_segments,
            now=self.clock.now,
            event_log=self.event_log,
        )
        return self.last_report

    # ── helpers ───────────────────────────────────────────────────────────

    def _record_violation(self, message: str) -> None:
        self.event_log.append(self.clock.now, LogCategory.INFO, f"Invariant violation: {message}")

    def _build_snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            tick=self._tick_count,
            sim_time=self.clock.now,
            is_running=self.clock.running,
            simulation_speed=self.clock.speed,
            weather=self.weather.state,
            intersections=tuple(
                IntersectionView.of(node) for node in self.network.intersections.values()
            ),
            vehicles=tuple(VehicleView.of(v, self.network) for v in self.flow.active()),
            stats=self.stats,
            logs=self.event_log.entries(),
            jammed_segments=self.stats.jammed_segments,
        )
