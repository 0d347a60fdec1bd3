"""
engine/signals.py
=================
Per-intersection traffic-light state machines.

In ``AUTO`` mode each intersection cycles::

    NS_GREEN → NS_YELLOW → ALL_RED → EW_GREEN → EW_YELLOW → ALL_RED → NS_GREEN …

driven by its elapsed-phase timer and its configured durations.  In
``MANUAL`` and ``EMERGENCY_PREEMPT`` modes timers are ignored and the
phase only changes through explicit intents.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple, Union

from engine.errors import InvalidArgument
from engine.event_log import EventLog, LogCategory
from engine.network import ControlMode, Intersection, Phase, RoadNetwork, axis_of
from engine.policy import EnginePolicy

log = logging.getLogger("engine")

_AUTO_NEXT: Dict[Phase, Phase] = {
    Phase.NS_GREEN: Phase.NS_YELLOW,
    Phase.NS_YELLOW: Phase.ALL_RED,
    Phase.EW_GREEN: Phase.EW_YELLOW,
    Phase.EW_YELLOW: Phase.ALL_RED,
}
_OTHER_AXIS: Dict[str, str] = {"NS": "EW", "EW": "NS"}

# Upper bound on phase changes per intersection per tick (very large dt)
_MAX_TRANSITIONS_PER_TICK = 16


def parse_phase(value: Union[str, Phase]) -> Phase:
    """Map a :class:`Phase` or its name (any case) to a member."""
    if isinstance(value, Phase):
        return value
    try:
        return Phase(str(value).strip().upper())
    except ValueError:
        raise InvalidArgument(f"invalid phase {value!r}") from None


class SignalController:
    """Owns signal state for every intersection of a :class:`RoadNetwork`.

    Parameters
    ----------
    network : RoadNetwork
        Intersections whose phases are driven.
    policy : EnginePolicy or None
        Supplies the emergency corridor row.
    event_log : EventLog or None
        Receives ``OVERRIDE`` and ``EMERGENCY`` entries.
    """

    def __init__(
        self,
        network: RoadNetwork,
        policy: Optional[EnginePolicy] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self.network = network
        self.policy = policy or network.policy
        self.event_log = event_log
        self.emergency_active = False
        corridor = self.policy.corridor_row()
        self.emergency_route: Tuple[int, ...] = tuple(
            n.id for n in sorted(network.intersections.values(), key=lambda n: n.col)
            if n.row == corridor
        )
        # Row corridor: traffic runs east-west along it
        self.corridor_phase = Phase.EW_GREEN

    # ── validation ────────────────────────────────────────────────────────

    def validate_id(self, intersection_id: int) -> int:
        # Integers or their decimal string form; bools are not ids
        if isinstance(intersection_id, bool) or not isinstance(intersection_id, (int, str)):
            raise InvalidArgument(f"unknown intersection {intersection_id!r}")
        try:
            int_id = int(intersection_id)
        except ValueError:
            raise InvalidArgument(f"unknown intersection {intersection_id!r}") from None
        if int_id not in self.network.intersections:
            raise InvalidArgument(f"unknown intersection {intersection_id!r}")
        return int_id

    # ── queries ───────────────────────────────────────────────────────────

    def phase_of(self, intersection_id: int) -> Phase:
        return self.network.intersections[intersection_id].phase

    def allows(self, intersection_id: int, arm: str) -> bool:
        """True when vehicles arriving on *arm* may cross (green or yellow)."""
        node = self.network.intersections[intersection_id]
        return node.phase.open_axis == axis_of(arm)

    # ── timer-driven cycling ──────────────────────────────────────────────

    def advance(self, dt: float) -> None:
        """Run every ``AUTO`` intersection's timer forward by *dt* seconds."""
        for node in self.network.intersections.values():
            if node.mode is not ControlMode.AUTO:
                continue
            node.elapsed += dt
            steps = 0
            while node.elapsed >= node.durations[node.phase] and steps < _MAX_TRANSITIONS_PER_TICK:
                node.elapsed -= node.durations[node.phase]
                self._enter(node, self._next_auto_phase(node))
                steps += 1

    @staticmethod
    def _next_auto_phase(node: Intersection) -> Phase:
        if node.phase is Phase.ALL_RED:
            return Phase.NS_GREEN if node.next_green == "NS" else Phase.EW_GREEN
        return _AUTO_NEXT[node.phase]

    @staticmethod
    def _enter(node: Intersection, phase: Phase) -> None:
        if phase is Phase.ALL_RED and node.phase.open_axis:
            node.next_green = _OTHER_AXIS[node.phase.open_axis]
        node.phase = phase

    # ── manual override ───────────────────────────────────────────────────

    def set_manual(self, intersection_id: int, phase: Union[str, Phase], now: float = 0.0) -> None:
        """Force *phase* and freeze the intersection until :meth:`return_to_auto`.

        While the intersection is preempted the override is remembered
        and takes effect once the emergency ends.
        """
        int_id = self.validate_id(intersection_id)
        phase = parse_phase(phase)
        node = self.network.intersections[int_id]
        node.manual_phase = phase
        if node.mode is ControlMode.EMERGENCY_PREEMPT:
            self._log(now, LogCategory.OVERRIDE,
                      f"Intersection {int_id}: override to {phase.value} held until preemption ends")
            return
        node.mode = ControlMode.MANUAL
        node.phase = phase
        node.elapsed = 0.0
        self._log(now, LogCategory.OVERRIDE, f"Intersection {int_id}: manual override to {phase.value}")

    def return_to_auto(self, intersection_id: int, now: float = 0.0) -> None:
        """Restore ``AUTO`` mode, re-entering the cycle at ``ALL_RED``."""
        int_id = self.validate_id(intersection_id)
        node = self.network.intersections[int_id]
        forced = node.manual_phase
        node.manual_phase = None
        if node.mode is ControlMode.EMERGENCY_PREEMPT:
            self._log(now, LogCategory.OVERRIDE,
                      f"Intersection {int_id}: override cleared, AUTO resumes after preemption")
            return
        if node.mode is ControlMode.AUTO and forced is None:
            return
        self._resume_auto(node, after=forced)
        self._log(now, LogCategory.OVERRIDE, f"Intersection {int_id}: returned to AUTO")

    @staticmethod
    def _resume_auto(node: Intersection, after: Optional[Phase]) -> None:
        node.mode = ControlMode.AUTO
        if after is not None and after.open_axis:
            node.next_green = _OTHER_AXIS[after.open_axis]
        node.phase = Phase.ALL_RED
        node.elapsed = 0.0

    # ── emergency preemption ──────────────────────────────────────────────

    def set_emergency(self, active: bool, now: float = 0.0) -> bool:
        """Activate or release preemption along the emergency route.

        Returns *True* if the flag actually changed.
        """
        active = bool(active)
        if active == self.emergency_active:
            return False
        self.emergency_active = active
        route = ", ".join(str(i) for i in self.emergency_route)
        if active:
            for int_id in self.emergency_route:
                node = self.network.intersections[int_id]
                node.mode = ControlMode.EMERGENCY_PREEMPT
                node.phase = self.corridor_phase
                node.elapsed = 0.0
            self._log(now, LogCategory.EMERGENCY,
                      f"Emergency preemption active on corridor [{route}]")
        else:
            for int_id in self.emergency_route:
                node = self.network.intersections[int_id]
                if node.manual_phase is not None:
                    node.mode = ControlMode.MANUAL
                    node.phase = node.manual_phase
                    node.elapsed = 0.0
                else:
                    self._resume_auto(node, after=self.corridor_phase)
            self._log(now, LogCategory.EMERGENCY,
                      f"Emergency cleared; corridor [{route}] back to normal control")
        return True

    def _log(self, now: float, category: LogCategory, message: str) -> None:
        log.debug("signals: %s", message)
        if self.event_log is not None:
            self.event_log.append(now, category, message)
