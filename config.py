#!/usr/bin/env python3
"""
config.py
=========
Application-wide configuration constants.

Values can be overridden via environment variables (see :mod:`main`).
This module is a thin, import-safe leaf; it never imports from
other project packages.
"""

# ── Grid defaults ────────────────────────────────────────────────────────────
DEFAULT_GRID_ROWS: int = 3
DEFAULT_GRID_COLS: int = 3

# ── Engine defaults ──────────────────────────────────────────────────────────
DEFAULT_TICK_RATE_HZ: float = 10.0
DEFAULT_LOG_CAPACITY: int = 200
DEFAULT_RUN_SECONDS: float = 30.0

# ── Logging ──────────────────────────────────────────────────────────────────
LOG_FILE: str = "traffic_engine.log"
DEBUG_LOG_FILE: str = "engine_debug.log"

# ── Bus topics ───────────────────────────────────────────────────────────────
INTENT_TOPIC: str = "engine.intent"
