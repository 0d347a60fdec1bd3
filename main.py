#!/usr/bin/env python3
"""
main.py
=======
Headless runner: hosts the engine on its background thread for a while,
exercises a few actions and logs statistics once per second.

Environment overrides::

    TRAFFIC_GRID_ROWS, TRAFFIC_GRID_COLS   grid size
    TRAFFIC_TICK_HZ                        engine ticks per second
    TRAFFIC_SEED                           random seed
    TRAFFIC_RUN_SECONDS                    wall-clock run time
    TRAFFIC_LOG_LEVEL                      DEBUG / INFO / WARNING ...
"""

import logging
import os
import time

import config
# Logging
from logging_setup import parse_level, setup_logging
# Engine
from engine.engine_bridge import EngineBridge
from engine.policy import EnginePolicy


def _env_int(name, default):
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name, default):
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


def main():
    setup_logging(parse_level(os.environ.get("TRAFFIC_LOG_LEVEL")))
    log = logging.getLogger("main")

    policy = EnginePolicy(
        grid_rows=_env_int("TRAFFIC_GRID_ROWS", config.DEFAULT_GRID_ROWS),
        grid_cols=_env_int("TRAFFIC_GRID_COLS", config.DEFAULT_GRID_COLS),
    )
    seed = os.environ.get("TRAFFIC_SEED")
    run_seconds = _env_float("TRAFFIC_RUN_SECONDS", config.DEFAULT_RUN_SECONDS)

    bridge = EngineBridge(
        tick_rate_hz=_env_float("TRAFFIC_TICK_HZ", config.DEFAULT_TICK_RATE_HZ),
        random_seed=int(seed) if seed else None,
        policy=policy,
    )
    log.info("Starting engine: %dx%d grid for %.0fs", policy.grid_rows, policy.grid_cols, run_seconds)
    bridge.start()
    bridge.set_simulation_speed(4.0)

    started = time.time()
    optimized = False
    try:
        while time.time() - started < run_seconds:
            time.sleep(1.0)
            stats = bridge.get_stats()
            log.info(
                "t=%.0fs vehicles=%d waiting=%d density=%.2f wait=%.1fs throughput=%.1f/min jams=%d",
                bridge.get_snapshot().sim_time,
                stats["vehicle_count"],
                stats["waiting_count"],
                stats["traffic_density"],
                stats["average_wait_time"],
                stats["throughput"],
                len(stats["jammed_segments"]),
            )
            if not optimized and time.time() - started >= run_seconds / 2:
                log.info("Triggering quantum optimization")
                bridge.apply_quantum_optimization()
                optimized = True
    except KeyboardInterrupt:
        log.info("Shutting down...")
    finally:
        bridge.stop()

    for entry in bridge.get_logs(10):
        log.info("event [%s] %s", entry["category"], entry["message"])
    log.info("intent bus: %s, tick errors: %d",
             bridge.engine.bus.metrics.report(), bridge.tick_errors)


if __name__ == "__main__":
    main()
