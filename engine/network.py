"""
engine/network.py
=================
Road-network topology for the grid simulation.

Defines :class:`Intersection`, :class:`Segment` and :class:`RoadNetwork`:
a fixed graph of intersections joined by *directional* segments.
Segments also carry runtime state: occupancy, weather-adjusted speed
limit and the jam flag with its hysteresis counters.

:func:`grid_network` builds a ``rows × cols`` grid with inlet (source)
and outlet (sink) segments on the outer sides.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from engine.errors import InvariantGuard
from engine.event_log import EventLog, LogCategory
from engine.policy import EnginePolicy, default_durations

log = logging.getLogger("engine")

DIRECTIONS: Tuple[str, ...] = ("N", "E", "S", "W")
OPPOSITE: Dict[str, str] = {"N": "S", "S": "N", "E": "W", "W": "E"}
# (row delta, col delta) for a step in each heading; row 0 is the north edge
_STEP: Dict[str, Tuple[int, int]] = {
    "N": (-1, 0),
    "S": (1, 0),
    "E": (0, 1),
    "W": (0, -1),
}


def axis_of(arm: str) -> str:
    """``"NS"`` for the N/S arms, ``"EW"`` for E/W."""
    return "NS" if arm in ("N", "S") else "EW"


class Phase(Enum):
    NS_GREEN = "NS_GREEN"
    NS_YELLOW = "NS_YELLOW"
    EW_GREEN = "EW_GREEN"
    EW_YELLOW = "EW_YELLOW"
    ALL_RED = "ALL_RED"

    @property
    def open_axis(self) -> Optional[str]:
        """Axis that may move during this phase (``None`` for ALL_RED)."""
        if self is Phase.ALL_RED:
            return None
        return self.value[:2]


class ControlMode(Enum):
    AUTO = "AUTO"
    MANUAL = "MANUAL"
    EMERGENCY_PREEMPT = "EMERGENCY_PREEMPT"


# ── Intersection ──────────────────────────────────────────────────────────────

@dataclass
class Intersection:
    """A signalised crossroads.

    Parameters
    ----------
    id : int
        Row-major index in the grid.
    row, col : int
        Grid coordinate (row 0 is the north edge).
    approaches : dict
        Arm (``N/E/S/W``) → id of the segment arriving on that arm;
        arms without a segment are omitted.
    """

    id: int
    row: int
    col: int
    approaches: Dict[str, str] = field(default_factory=dict)

    # Runtime signal state (mutated by SignalController)
    phase: Phase = Phase.NS_GREEN
    mode: ControlMode = ControlMode.AUTO
    durations: Dict[Phase, float] = field(default_factory=dict)
    elapsed: float = 0.0
    manual_phase: Optional[Phase] = None
    next_green: str = "EW"

    def approach(self, arm: str) -> Optional[str]:
        return self.approaches.get(arm)


# ── Segment ───────────────────────────────────────────────────────────────────

@dataclass
class Segment:
    """A one-way road link.

    ``from_node`` is ``None`` for inlets (vehicles appear here) and
    ``to_node`` is ``None`` for outlets (vehicles leave the network at
    the end).  ``heading`` is the travel direction; vehicles arrive at
    ``to_node`` on the opposite arm.
    """

    id: str
    from_node: Optional[int]
    to_node: Optional[int]
    heading: str
    length: float
    capacity: int
    base_speed_limit: float

    occupancy: int = 0
    jammed: bool = False
    speed_limit: float = 0.0
    _high_ticks: int = field(default=0, repr=False)
    _low_ticks: int = field(default=0, repr=False)

    def __post_init__(self) -> None:
        if self.speed_limit <= 0.0:
            self.speed_limit = self.base_speed_limit

    @property
    def arrival_arm(self) -> str:
        return OPPOSITE[self.heading]

    @property
    def is_inlet(self) -> bool:
        return self.from_node is None

    @property
    def is_outlet(self) -> bool:
        return self.to_node is None

    @property
    def ratio(self) -> float:
        return self.occupancy / self.capacity if self.capacity > 0 else 0.0

    @property
    def has_room(self) -> bool:
        return self.occupancy < self.capacity


# ── Road network ──────────────────────────────────────────────────────────────

class RoadNetwork:
    """Graph of intersections connected by directional segments.

    Topology is fixed after construction.  Runtime helpers used by the
    flow model and the engine:

    * **enter / leave**: occupancy bookkeeping, always paired with a
      vehicle entering or leaving the segment.
    * **apply_weather**: scale every segment's speed limit.
    * **update_jams**: hysteresis-based jam detection.
    """

    def __init__(
        self,
        intersections: Iterable[Intersection],
        segments: Iterable[Segment],
        *,
        policy: Optional[EnginePolicy] = None,
        guard: Optional[InvariantGuard] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self.policy = policy or EnginePolicy()
        self.guard = guard or InvariantGuard(self.policy.strict_invariants)
        self.event_log = event_log
        self.intersections: Dict[int, Intersection] = {n.id: n for n in intersections}
        self.segments: Dict[str, Segment] = {s.id: s for s in segments}

        self._by_coord: Dict[Tuple[int, int], int] = {
            (n.row, n.col): n.id for n in self.intersections.values()
        }
        self._between: Dict[Tuple[int, int], str] = {}
        self._outlets: Dict[int, List[str]] = {}
        for seg in self.segments.values():
            if seg.from_node is not None and seg.to_node is not None:
                self._between[(seg.from_node, seg.to_node)] = seg.id
            elif seg.from_node is not None:
                self._outlets.setdefault(seg.from_node, []).append(seg.id)
            if seg.to_node is not None:
                self.intersections[seg.to_node].approaches[seg.arrival_arm] = seg.id

    # ── queries ───────────────────────────────────────────────────────────

    def intersection(self, int_id: int) -> Intersection:
        return self.intersections[int_id]

    def segment(self, seg_id: str) -> Segment:
        return self.segments[seg_id]

    def neighbor(self, int_id: int, direction: str) -> Optional[int]:
        """Intersection one step away in *direction*, or ``None`` at the edge."""
        node = self.intersections[int_id]
        dr, dc = _STEP[direction]
        return self._by_coord.get((node.row + dr, node.col + dc))

    def segment_between(self, from_id: int, to_id: int) -> Optional[Segment]:
        seg_id = self._between.get((from_id, to_id))
        return self.segments[seg_id] if seg_id else None

    def inlets(self) -> List[Segment]:
        return [s for s in self.segments.values() if s.is_inlet]

    def outlets_of(self, int_id: int) -> List[Segment]:
        return [self.segments[sid] for sid in self._outlets.get(int_id, [])]

    def jammed_ids(self) -> frozenset:
        return frozenset(s.id for s in self.segments.values() if s.jammed)

    def get_grid_info(self) -> Tuple[int, int, int]:
        """Return (num_intersections, grid_cols, grid_rows)."""
        if not self.intersections:
            return (0, 0, 0)
        cols = len({n.col for n in self.intersections.values()})
        rows = len({n.row for n in self.intersections.values()})
        return (len(self.intersections), cols, rows)

    # ── occupancy ─────────────────────────────────────────────────────────

    def enter(self, seg_id: str) -> None:
        self.segments[seg_id].occupancy += 1

    def leave(self, seg_id: str) -> bool:
        """Decrement occupancy; return *False* if that would go negative."""
        seg = self.segments[seg_id]
        if seg.occupancy <= 0:
            self.guard.violation(f"occupancy of {seg_id} would become negative")
            return False
        seg.occupancy -= 1
        return True

    # ── per-tick updates ──────────────────────────────────────────────────

    def apply_weather(self, speed_multiplier: float) -> None:
        for seg in self.segments.values():
            seg.speed_limit = seg.base_speed_limit * speed_multiplier

    def jam_thresholds(self, jam_multiplier: float = 1.0) -> Tuple[float, float]:
        """(enter, exit) ratios after scaling by the weather jam multiplier."""
        scale = 1.0 / max(1.0, jam_multiplier)
        return (self.policy.jam_enter_ratio * scale, self.policy.jam_exit_ratio * scale)

    def update_jams(self, now: float, jam_multiplier: float = 1.0) -> List[Tuple[str, bool]]:
        """Advance every segment's hysteresis counters.

        Returns the ``(segment_id, jammed)`` transitions that happened
        this tick; each one is also appended to the event log.
        """
        enter_ratio, exit_ratio = self.jam_thresholds(jam_multiplier)
        transitions: List[Tuple[str, bool]] = []
        for seg in self.segments.values():
            ratio = seg.ratio
            if not seg.jammed:
                seg._low_ticks = 0
                seg._high_ticks = seg._high_ticks + 1 if ratio >= enter_ratio else 0
                if seg._high_ticks >= self.policy.jam_enter_ticks:
                    seg.jammed = True
                    seg._high_ticks = 0
                    transitions.append((seg.id, True))
            else:
                seg._high_ticks = 0
                seg._low_ticks = seg._low_ticks + 1 if ratio < exit_ratio else 0
                if seg._low_ticks >= self.policy.jam_exit_ticks:
                    seg.jammed = False
                    seg._low_ticks = 0
                    transitions.append((seg.id, False))

        for seg_id, jammed in transitions:
            seg = self.segments[seg_id]
            if jammed:
                msg = f"Jam formed on segment {seg_id} ({seg.occupancy}/{seg.capacity} vehicles)"
            else:
                msg = f"Jam cleared on segment {seg_id}"
            log.debug("jam transition %s jammed=%s", seg_id, jammed)
            if self.event_log is not None:
                self.event_log.append(now, LogCategory.JAM, msg)
        return transitions


# ── Grid layout ───────────────────────────────────────────────────────────────

def grid_network(
    policy: Optional[EnginePolicy] = None,
    *,
    inlet_sides: Iterable[str] = DIRECTIONS,
    guard: Optional[InvariantGuard] = None,
    event_log: Optional[EventLog] = None,
) -> RoadNetwork:
    """Build a ``grid_rows × grid_cols`` network.

    Neighbouring intersections are joined by one segment in each
    direction.  Every outer side gets an outlet; sides listed in
    *inlet_sides* also get an inlet, the others leave that approach
    absent.  Initial signal timers are staggered so neighbouring
    intersections are out of phase.
    """
    policy = policy or EnginePolicy()
    rows, cols = max(1, policy.grid_rows), max(1, policy.grid_cols)
    inlet_sides = set(inlet_sides)
    durations = {Phase[name]: secs for name, secs in default_durations(policy).items()}

    nodes: List[Intersection] = []
    for r in range(rows):
        for c in range(cols):
            node_id = r * cols + c
            nodes.append(Intersection(
                id=node_id,
                row=r,
                col=c,
                durations=dict(durations),
                elapsed=(node_id % 3) * policy.green_s / 3.0,
            ))

    def _seg(seg_id: str, a: Optional[int], b: Optional[int], heading: str, length: float) -> Segment:
        return Segment(
            id=seg_id,
            from_node=a,
            to_node=b,
            heading=heading,
            length=length,
            capacity=policy.segment_capacity,
            base_speed_limit=policy.speed_limit_mps,
        )

    segments: List[Segment] = []
    for node in nodes:
        for heading in DIRECTIONS:
            dr, dc = _STEP[heading]
            nr, nc = node.row + dr, node.col + dc
            if 0 <= nr < rows and 0 <= nc < cols:
                other = nr * cols + nc
                segments.append(_seg(f"{node.id}->{other}", node.id, other, heading, policy.segment_length_m))
                continue
            # Outer side: heading leaves the grid here
            segments.append(_seg(
                f"{node.id}->sink:{heading}", node.id, None, heading, policy.boundary_length_m,
            ))
            if heading in inlet_sides:
                segments.append(_seg(
                    f"src:{heading}->{node.id}", None, node.id, OPPOSITE[heading],
                    policy.boundary_length_m,
                ))

    return RoadNetwork(nodes, segments, policy=policy, guard=guard, event_log=event_log)
