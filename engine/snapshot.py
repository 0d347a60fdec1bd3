"""
engine/snapshot.py
==================
Immutable views of engine state published at the end of every tick.

Readers (the view layer, the bridge thread's callers) only ever see
these copies, never the live objects the tick function mutates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

from engine.event_log import LogEntry
from engine.network import ControlMode, Intersection, Phase, RoadNetwork
from engine.stats import Stats
from engine.vehicles import Vehicle
from engine.weather import Weather


@dataclass(frozen=True)
class IntersectionView:
    id: int
    row: int
    col: int
    phase: Phase
    mode: ControlMode
    durations: Mapping[str, float]
    elapsed: float
    manual_phase: Optional[Phase]
    approaches: Mapping[str, str]

    @classmethod
    def of(cls, node: Intersection) -> "IntersectionView":
        return cls(
            id=node.id,
            row=node.row,
            col=node.col,
            phase=node.phase,
            mode=node.mode,
            durations=MappingProxyType({p.value: secs for p, secs in node.durations.items()}),
            elapsed=node.elapsed,
            manual_phase=node.manual_phase,
            approaches=MappingProxyType(dict(node.approaches)),
        )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "row": self.row,
            "col": self.col,
            "phase": self.phase.value,
            "mode": self.mode.value,
            "durations": dict(self.durations),
            "elapsed": self.elapsed,
            "manual_phase": self.manual_phase.value if self.manual_phase else None,
            "approaches": dict(self.approaches),
        }


@dataclass(frozen=True)
class VehicleView:
    id: int
    segment_id: str
    position: float
    speed: float
    waiting: bool
    wait_time: float
    distance: float
    remaining_route: Tuple[int, ...]

    @classmethod
    def of(cls, vehicle: Vehicle, network: RoadNetwork) -> "VehicleView":
        return cls(
            id=vehicle.id,
            segment_id=vehicle.segment_id,
            position=vehicle.position,
            speed=vehicle.speed,
            waiting=vehicle.waiting,
            wait_time=vehicle.wait_time,
            distance=vehicle.distance,
            remaining_route=tuple(vehicle.remaining_route(network)),
        )

    def as_dict(self) -> dict:
        data = dict(self.__dict__)
        data["remaining_route"] = list(self.remaining_route)
        return data


@dataclass(frozen=True)
class EngineSnapshot:
    """Everything a consumer may read, frozen at a tick boundary."""

    tick: int
    sim_time: float
    is_running: bool
    simulation_speed: float
    weather: Weather
    intersections: Tuple[IntersectionView, ...]
    vehicles: Tuple[VehicleView, ...]
    stats: Stats
    logs: Tuple[LogEntry, ...]
    jammed_segments: FrozenSet[str] = field(default_factory=frozenset)

    def intersection(self, intersection_id: int) -> IntersectionView:
        for view in self.intersections:
            if view.id == intersection_id:
                return view
        raise KeyError(intersection_id)

    def as_dict(self) -> dict:
        return {
            "tick": self.tick,
            "sim_time": self.sim_time,
            "is_running": self.is_running,
            "simulation_speed": self.simulation_speed,
            "weather": self.weather.value,
            "intersections": [i.as_dict() for i in self.intersections],
            "vehicles": [v.as_dict() for v in self.vehicles],
            "stats": self.stats.as_dict(),
            "logs": [e.as_dict() for e in self.logs],
            "jammed_segments": sorted(self.jammed_segments),
        }
