"""
engine/engine_bridge.py
=======================
Background-thread host for :class:`~engine.world.TrafficEngine`.  The
thread is the engine's only writer; callers publish intents through the
engine's action methods and poll the bridge for the latest snapshot
without blocking.

Public API consumed by a view layer
-----------------------------------
* ``get_snapshot()``          → ``EngineSnapshot``
* ``get_vehicles()``          → ``List[dict]``
* ``get_intersections()``     → ``List[dict]``
* ``get_stats()``             → ``dict``
* ``get_logs(n)``             → ``List[dict]``
* ``set_is_running(bool)``, ``set_simulation_speed(float)``,
  ``set_weather(str)``, ``toggle_emergency(bool)``,
  ``apply_quantum_optimization()``,
  ``set_light_state_manually(id, phase)``, ``return_to_auto(id)``
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, List, Optional, Union

from engine.network import Phase
from engine.policy import EnginePolicy
from engine.snapshot import EngineSnapshot
from engine.weather import Weather
from engine.world import TrafficEngine

log = logging.getLogger("engine_bridge")


class EngineBridge:
    """Engine orchestrator running in a background thread.

    The thread calls :meth:`TrafficEngine.tick` at ``tick_rate_hz`` with
    a wall-clock delta of ``1 / tick_rate_hz``, and caches each
    published snapshot for reader threads.

    Parameters
    ----------
    tick_rate_hz : float
        Engine ticks per wall-clock second.
    random_seed : int or None
        Seed for reproducibility.
    policy : EnginePolicy or None
        Tunable constants.
    engine : TrafficEngine or None
        Pre-built engine; one is created from *policy* / *random_seed*
        when *None*.
    """

    def __init__(
        self,
        tick_rate_hz: float = 10.0,
        random_seed: Optional[int] = None,
        policy: Optional[EnginePolicy] = None,
        engine: Optional[TrafficEngine] = None,
    ) -> None:
        self._tick_rate_hz = max(0.1, float(tick_rate_hz))
        self._engine = engine or TrafficEngine(policy=policy, seed=random_seed)

        self._lock = threading.Lock()
        self._snapshot: EngineSnapshot = self._engine.snapshot()
        self.tick_errors = 0

        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def engine(self) -> TrafficEngine:
        return self._engine

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Spawn the background engine thread."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(
            target=self._loop, daemon=True, name="EngineBridge"
        )
        self._thread.start()
        log.info("EngineBridge started at %.1f Hz", self._tick_rate_hz)

    def stop(self) -> None:
        """Signal the thread to stop and wait for it to join."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=2.0)
            self._thread = None
        log.info("EngineBridge stopped")

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ── Read API ──────────────────────────────────────────────────────────────

    def get_snapshot(self) -> EngineSnapshot:
        with self._lock:
            return self._snapshot

    def get_vehicles(self) -> List[Dict[str, Any]]:
        return [v.as_dict() for v in self.get_snapshot().vehicles]

    def get_intersections(self) -> List[Dict[str, Any]]:
        return [i.as_dict() for i in self.get_snapshot().intersections]

    def get_stats(self) -> Dict[str, Any]:
        return self.get_snapshot().stats.as_dict()

    def get_logs(self, n: int = 20) -> List[Dict[str, Any]]:
        """The *n* most recent log entries, newest first."""
        logs = self.get_snapshot().logs
        return [e.as_dict() for e in reversed(logs[-n:])] if n > 0 else []

    # ── Actions (forwarded; applied by the engine at the next tick) ───────────

    def set_is_running(self, running: bool) -> None:
        self._engine.set_is_running(running)

    def set_simulation_speed(self, speed: float) -> None:
        self._engine.set_simulation_speed(speed)

    def set_weather(self, weather: Union[str, Weather]) -> None:
        self._engine.set_weather(weather)

    def toggle_emergency(self, active: bool) -> None:
        self._engine.toggle_emergency(active)

    def apply_quantum_optimization(self) -> None:
        self._engine.apply_quantum_optimization()

    def set_light_state_manually(self, intersection_id: int, phase: Union[str, Phase]) -> None:
        self._engine.set_light_state_manually(intersection_id, phase)

    def return_to_auto(self, intersection_id: int) -> None:
        self._engine.return_to_auto(intersection_id)

    # ── Background loop ───────────────────────────────────────────────────────

    def step(self, delta: Optional[float] = None) -> EngineSnapshot:
        """Run one tick on the calling thread (only while not started)."""
        if self._running:
            raise RuntimeError("EngineBridge.step() called while the background thread owns the engine")
        self._tick(delta if delta is not None else 1.0 / self._tick_rate_hz)
        return self.get_snapshot()

    def _loop(self) -> None:
        dt = 1.0 / self._tick_rate_hz
        while self._running:
            t0 = time.perf_counter()
            try:
                self._tick(dt)
            except Exception:
                self.tick_errors += 1
                log.exception("EngineBridge tick error")
            time.sleep(max(0.0, dt - (time.perf_counter() - t0)))

    def _tick(self, dt: float) -> None:
        snapshot = self._engine.tick(dt)
        # Atomic swap; reader threads see whole snapshots only.
        with self._lock:
            self._snapshot = snapshot
