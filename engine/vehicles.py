"""
engine/vehicles.py
==================
Vehicle entities and the flow model that spawns, advances, transfers
and retires them.

Vehicles live on exactly one segment at a time and carry a fractional
``position`` along it (0.0 at entry, 1.0 at the stop line / exit).  A
vehicle at 1.0 either crosses into the next segment of its path in the
same tick, retires (path exhausted on an outlet), or waits clamped at
1.0 until the signal is green/yellow for its arm *and* the downstream
segment has room.  Capacity is soft: a vehicle held on green behind a
full segment for ``policy.max_block_wait_s`` enters it anyway.
"""

from __future__ import annotations

import logging
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

import numpy as np

from engine.errors import InvariantGuard
from engine.network import OPPOSITE, RoadNetwork, Segment
from engine.policy import EnginePolicy, congestion_multiplier
from engine.signals import SignalController
from engine.weather import WeatherModel

log = logging.getLogger("engine")

_NS_STEP = {1: "S", -1: "N"}
_EW_STEP = {1: "E", -1: "W"}


@dataclass
class Vehicle:
    """A single vehicle.

    Attributes
    ----------
    id : int
        Unique, monotonically increasing identifier.
    segment_id : str
        Segment the vehicle is currently on.
    path : list of str
        Segments still to traverse *after* the current one; empty once
        the vehicle is on its outlet.
    base_speed : float
        Free-flow speed in m/s.
    position : float
        Fraction of the current segment covered, in ``[0, 1]``.
    speed : float
        Effective speed in m/s during the last tick (0 while waiting).
    waiting : bool
        Queued at the end of the segment by a red light or a full
        downstream segment.
    wait_time : float
        Simulated seconds spent waiting so far.
    distance : float
        Metres travelled since spawning; never decreases.
    blocked_time : float
        Simulated seconds spent at a green stop line behind a full
        downstream segment since the last transfer.
    """

    id: int
    segment_id: str
    path: List[str]
    base_speed: float
    position: float = 0.0
    speed: float = 0.0
    waiting: bool = False
    wait_time: float = 0.0
    distance: float = 0.0
    spawned_at: float = 0.0
    blocked_time: float = 0.0

    def remaining_route(self, network: RoadNetwork) -> List[int]:
        """Intersections still ahead, in traversal order."""
        route: List[int] = []
        for seg_id in [self.segment_id] + self.path:
            to_node = network.segments[seg_id].to_node
            if to_node is not None:
                route.append(to_node)
        return route


class VehicleFlowModel:
    """Spawns, moves and retires vehicles on a :class:`RoadNetwork`.

    Parameters
    ----------
    network : RoadNetwork
        Topology and occupancy bookkeeping.
    signals : SignalController
        Answers whether a vehicle may cross an intersection.
    weather : WeatherModel
        Supplies speed and jam multipliers.
    policy : EnginePolicy or None
        Flow tunables.
    rng : random.Random or None
        Route and speed choices.
    arrivals : numpy.random.Generator or None
        Poisson arrival sampling.
    guard : InvariantGuard or None
        Handles internal invariant violations.
    """

    def __init__(
        self,
        network: RoadNetwork,
        signals: SignalController,
        weather: WeatherModel,
        policy: Optional[EnginePolicy] = None,
        rng: Optional[random.Random] = None,
        arrivals: Optional[np.random.Generator] = None,
        guard: Optional[InvariantGuard] = None,
    ) -> None:
        self.network = network
        self.signals = signals
        self.weather = weather
        self.policy = policy or network.policy
        self._rng = rng or random.Random()
        self._arrivals = arrivals or np.random.default_rng()
        self.guard = guard or network.guard
        self.vehicles: Dict[int, Vehicle] = {}
        self.total_spawned = 0
        self.total_retired = 0
        self.blocked_spawns = 0
        self.squeezed = 0
        self.recent_retirements: Deque[float] = deque()
        self._next_id = 0
        self._exit_nodes = [i for i in network.intersections if network.outlets_of(i)]

    # ── tick ──────────────────────────────────────────────────────────────

    def step(self, dt: float, now: float) -> None:
        """Advance existing vehicles, then spawn new arrivals."""
        self.advance(dt, now)
        self.spawn(dt, now)
        horizon = now - self.policy.throughput_window_s
        while self.recent_retirements and self.recent_retirements[0] < horizon:
            self.recent_retirements.popleft()

    def advance(self, dt: float, now: float) -> None:
        speed_mult = self.weather.speed_multiplier
        for vehicle in list(self.vehicles.values()):
            seg = self.network.segments[vehicle.segment_id]
            if not vehicle.waiting:
                free_flow = min(vehicle.base_speed * speed_mult, seg.speed_limit)
                vehicle.speed = free_flow * congestion_multiplier(seg.ratio, self.policy)
                new_pos = min(1.0, vehicle.position + vehicle.speed * dt / seg.length)
                vehicle.distance += (new_pos - vehicle.position) * seg.length
                vehicle.position = new_pos
            if vehicle.position >= 1.0:
                self._at_segment_end(vehicle, seg, dt, now)

    def _at_segment_end(self, vehicle: Vehicle, seg: Segment, dt: float, now: float) -> None:
        if not vehicle.path:
            if not seg.is_outlet:
                self.guard.violation(
                    f"vehicle {vehicle.id} has no route beyond {seg.id}; retiring it"
                )
            self._retire(vehicle, now)
            return

        nxt = self.network.segments[vehicle.path[0]]
        if self.signals.allows(seg.to_node, seg.arrival_arm):
            if nxt.has_room or self._may_squeeze(vehicle):
                self.network.leave(seg.id)
                self.network.enter(nxt.id)
                vehicle.segment_id = nxt.id
                vehicle.path.pop(0)
                vehicle.position = 0.0
                vehicle.waiting = False
                vehicle.blocked_time = 0.0
                return
            vehicle.blocked_time += dt

        vehicle.waiting = True
        vehicle.position = 1.0
        vehicle.speed = 0.0
        vehicle.wait_time += dt

    def _may_squeeze(self, vehicle: Vehicle) -> bool:
        """Whether a vehicle held on green long enough may overfill the next segment.

        Capacity is a soft bound: a ring of full segments feeding one
        another never drains unless some vehicle overfills.
        """
        limit = self.policy.max_block_wait_s
        if limit is None or vehicle.blocked_time < limit:
            return False
        self.squeezed += 1
        log.debug("vehicle %d enters a full segment after %.1fs blocked on green",
                  vehicle.id, vehicle.blocked_time)
        return True

    def _retire(self, vehicle: Vehicle, now: float) -> None:
        self.network.leave(vehicle.segment_id)
        del self.vehicles[vehicle.id]
        self.total_retired += 1
        self.recent_retirements.append(now)
        log.debug("retired vehicle %d after %.1fs (waited %.1fs)",
                  vehicle.id, now - vehicle.spawned_at, vehicle.wait_time)

    # ── spawning ──────────────────────────────────────────────────────────

    def spawn(self, dt: float, now: float) -> List[Vehicle]:
        """Sample Poisson arrivals on every inlet.

        Worse weather divides the arrival rate by its jam multiplier;
        arrivals onto a full inlet or above the global cap are dropped
        and counted in :attr:`blocked_spawns`.
        """
        inlets = self.network.inlets()
        if not inlets or self.policy.arrival_rate_per_s <= 0.0:
            return []
        rate = self.policy.arrival_rate_per_s * dt / self.weather.jam_multiplier
        counts = self._arrivals.poisson(rate, size=len(inlets))
        spawned: List[Vehicle] = []
        for inlet, count in zip(inlets, counts):
            for _ in range(int(count)):
                if len(self.vehicles) >= self.policy.max_vehicles or not inlet.has_room:
                    self.blocked_spawns += 1
                    continue
                spawned.append(self.add_vehicle(inlet.id, now=now))
        return spawned

    def add_vehicle(
        self,
        inlet_id: str,
        path: Optional[List[str]] = None,
        now: float = 0.0,
        base_speed: Optional[float] = None,
    ) -> Vehicle:
        """Place a new vehicle at the start of *inlet_id*.

        *path* defaults to :meth:`plan_route`; it must be a list of
        existing segment ids forming a connected chain.
        """
        inlet = self.network.segments[inlet_id]
        if path is None:
            path = self.plan_route(inlet)
        if base_speed is None:
            base_speed = self._rng.uniform(self.policy.base_speed_min_mps, self.policy.base_speed_max_mps)
        vehicle = Vehicle(
            id=self._next_id,
            segment_id=inlet.id,
            path=list(path),
            base_speed=base_speed,
            spawned_at=now,
        )
        self._next_id += 1
        self.network.enter(inlet.id)
        self.vehicles[vehicle.id] = vehicle
        self.total_spawned += 1
        return vehicle

    def plan_route(self, inlet: Segment) -> List[str]:
        """Shortest-hop staircase from the inlet to a random exit.

        The path visits ``|Δrow| + |Δcol|`` internal segments in random
        order and ends on an outlet of the target intersection (never
        the outlet straight back toward the inlet side).
        """
        start = inlet.to_node
        back_out = OPPOSITE[inlet.heading]
        targets = [
            n for n in self._exit_nodes
            if n != start or any(s.heading != back_out for s in self.network.outlets_of(n))
        ] or self._exit_nodes
        if start is None or not targets:
            return []
        target = self.network.intersections[self._rng.choice(targets)]
        here = self.network.intersections[start]
        dr, dc = target.row - here.row, target.col - here.col
        moves = [_NS_STEP[1 if dr > 0 else -1]] * abs(dr) + [_EW_STEP[1 if dc > 0 else -1]] * abs(dc)
        self._rng.shuffle(moves)

        path: List[str] = []
        current = start
        for move in moves:
            nxt = self.network.neighbor(current, move)
            seg = self.network.segment_between(current, nxt) if nxt is not None else None
            if seg is None:
                break
            path.append(seg.id)
            current = nxt

        excluded = back_out if current == start else None
        exits = [s for s in self.network.outlets_of(current) if s.heading != excluded]
        if not exits:
            exits = self.network.outlets_of(current)
        if exits:
            path.append(self._rng.choice(exits).id)
        return path

    # ── queries ───────────────────────────────────────────────────────────

    def active(self) -> List[Vehicle]:
        return list(self.vehicles.values())

    def waiting_count(self) -> int:
        return sum(1 for v in self.vehicles.values() if v.waiting)
