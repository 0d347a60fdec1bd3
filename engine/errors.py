"""
engine/errors.py
================
Exception taxonomy and the invariant guard shared by every component.

* :class:`InvalidArgument`: caller mistakes (bad speed, unknown
  intersection id, invalid phase).  Raised synchronously; engine state
  is left untouched.
* :class:`InvariantViolation`: internal bugs (negative occupancy, a
  retired vehicle still active).  Fatal in strict mode, otherwise
  logged and the offending mutation is skipped.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

log = logging.getLogger("engine")


class EngineError(Exception):
    """Base class for every error raised by the engine."""


class InvalidArgument(EngineError, ValueError):
    """An action was called with an argument the engine cannot accept."""


class InvariantViolation(EngineError, RuntimeError):
    """Internal state would break a data-model invariant."""


class InvariantGuard:
    """Decides what happens when a component detects a broken invariant.

    Parameters
    ----------
    strict : bool
        Raise :class:`InvariantViolation` immediately (debug behaviour).
    on_violation : callable or None
        Called with the message in non-strict mode, typically to add an
        entry to the event log.
    """

    def __init__(
        self,
        strict: bool = False,
        on_violation: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.strict = strict
        self.on_violation = on_violation
        self.count = 0

    def violation(self, message: str) -> None:
        self.count += 1
        if self.strict:
            raise InvariantViolation(message)
        log.error("invariant violation: %s", message)
        if self.on_violation is not None:
            self.on_violation(message)
