"""
engine/stats.py
===============
Derived traffic metrics, recomputed once per tick after every mutation
has settled.  :func:`compute_stats` only reads engine state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping

import numpy as np

from engine.network import RoadNetwork
from engine.signals import SignalController
from engine.vehicles import VehicleFlowModel


@dataclass(frozen=True)
class Stats:
    """Snapshot of network-wide traffic metrics.

    ``throughput`` is vehicles retired per simulated minute over the
    flow model's sliding window.  ``average_wait_time`` is the mean
    accumulated wait of vehicles currently in the network.
    """

    traffic_density: float = 0.0
    segment_density: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    intersection_density: Mapping[int, float] = field(default_factory=lambda: MappingProxyType({}))
    emergency_active: bool = False
    average_wait_time: float = 0.0
    throughput: float = 0.0
    jammed_segments: FrozenSet[str] = frozenset()
    vehicle_count: int = 0
    waiting_count: int = 0
    total_spawned: int = 0
    total_retired: int = 0
    average_speed: float = 0.0

    def as_dict(self) -> dict:
        return {
            "traffic_density": self.traffic_density,
            "segment_density": dict(self.segment_density),
            "intersection_density": {str(k): v for k, v in self.intersection_density.items()},
            "emergency_active": self.emergency_active,
            "average_wait_time": self.average_wait_time,
            "throughput": self.throughput,
            "jammed_segments": sorted(self.jammed_segments),
            "vehicle_count": self.vehicle_count,
            "waiting_count": self.waiting_count,
            "total_spawned": self.total_spawned,
            "total_retired": self.total_retired,
            "average_speed": self.average_speed,
        }


def compute_stats(
    network: RoadNetwork,
    flow: VehicleFlowModel,
    signals: SignalController,
    now: float,
) -> Stats:
    """Aggregate density, waits, throughput and flags for the current tick."""
    segments = list(network.segments.values())
    occupancy = np.array([s.occupancy for s in segments], dtype=float)
    capacity = np.array([s.capacity for s in segments], dtype=float)

    ratios = np.divide(occupancy, capacity, out=np.zeros_like(occupancy), where=capacity > 0)
    total_capacity = float(capacity.sum())
    overall = float(occupancy.sum() / total_capacity) if total_capacity > 0 else 0.0
    segment_density = {s.id: float(r) for s, r in zip(segments, ratios)}

    intersection_density: Dict[int, float] = {}
    for node in network.intersections.values():
        approach = [segment_density[sid] for sid in node.approaches.values()]
        intersection_density[node.id] = float(np.mean(approach)) if approach else 0.0

    vehicles = flow.active()
    if vehicles:
        waits = np.array([v.wait_time for v in vehicles], dtype=float)
        speeds = np.array([v.speed for v in vehicles], dtype=float)
        average_wait = float(waits.mean())
        average_speed = float(speeds.mean())
    else:
        average_wait = average_speed = 0.0

    window = min(flow.policy.throughput_window_s, now)
    throughput = len(flow.recent_retirements) * 60.0 / window if window > 0 else 0.0

    return Stats(
        traffic_density=overall,
        segment_density=MappingProxyType(segment_density),
        intersection_density=MappingProxyType(intersection_density),
        emergency_active=signals.emergency_active,
        average_wait_time=average_wait,
        throughput=throughput,
        jammed_segments=network.jammed_ids(),
        vehicle_count=len(vehicles),
        waiting_count=sum(1 for v in vehicles if v.waiting),
        total_spawned=flow.total_spawned,
        total_retired=flow.total_retired,
        average_speed=average_speed,
    )
