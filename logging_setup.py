#!/usr/bin/env python3
"""
logging_setup.py
================
Root logger configuration for the headless runner.

* console handler at the requested level;
* ``traffic_engine.log`` rotating file (1 MB, 2 backups) at the same level;
* ``engine_debug.log`` rotating file (5 MB, 2 backups) receiving every
  ``engine.*`` record down to DEBUG (per-tick signal, flow and optimizer
  detail).

Call :func:`setup_logging` once at startup, before the engine is built.
"""

import logging
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

import config

_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def parse_level(level: Union[int, str, None], default: int = logging.INFO) -> int:
    """Map ``"debug"`` / ``"WARNING"`` / ``10`` style values to a level number."""
    if level is None or level == "":
        return default
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else default


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = config.LOG_FILE,
    debug_file: Optional[str] = config.DEBUG_LOG_FILE,
) -> None:
    """Install console and rotating file handlers.

    Parameters
    ----------
    level : int or str
        Minimum severity for console and main file output.
    log_file : str or None
        Main log file; *None* disables it.
    debug_file : str or None
        Engine DEBUG capture file; *None* disables it.
    """
    level = parse_level(level)
    fmt = logging.Formatter(_FORMAT)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(fmt)
    root.addHandler(console)

    if log_file:
        main_file = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=2)
        main_file.setLevel(level)
        main_file.setFormatter(fmt)
        root.addHandler(main_file)

    engine_logger = logging.getLogger("engine")
    for handler in list(engine_logger.handlers):
        engine_logger.removeHandler(handler)
        handler.close()
    if not debug_file:
        engine_logger.setLevel(logging.NOTSET)
        return

    # Engine records reach DEBUG here while the root handlers keep `level`
    engine_logger.setLevel(logging.DEBUG)
    debug = RotatingFileHandler(debug_file, maxBytes=5_000_000, backupCount=2)
    debug.setLevel(logging.DEBUG)
    debug.setFormatter(fmt)
    engine_logger.addHandler(debug)
