#!/usr/bin/env python3
"""
Vehicle flow tests: routing, stop-line behaviour, capacity limits and
occupancy conservation.
"""

from __future__ import annotations

import dataclasses
import random
import unittest
from collections import Counter

import numpy as np

from engine.errors import InvariantViolation
from engine.network import grid_network
from engine.policy import EnginePolicy, congestion_multiplier
from engine.signals import SignalController
from engine.vehicles import VehicleFlowModel
from engine.weather import Weather, WeatherModel


def _flow(policy: EnginePolicy, seed: int = 7, weather: Weather = Weather.CLEAR):
    net = grid_network(policy)
    ctrl = SignalController(net, policy)
    flow = VehicleFlowModel(
        net, ctrl, WeatherModel(weather), policy,
        rng=random.Random(seed), arrivals=np.random.default_rng(seed),
    )
    return net, ctrl, flow


def _quiet(**overrides) -> EnginePolicy:
    params = dict(grid_rows=1, grid_cols=2, arrival_rate_per_s=0.0)
    params.update(overrides)
    return EnginePolicy(**params)


class RoutingTests(unittest.TestCase):
    def test_routes_are_connected_chains_ending_on_an_outlet(self) -> None:
        policy = EnginePolicy(grid_rows=3, grid_cols=4)
        net, _, flow = _flow(policy, seed=3)
        for inlet in net.inlets():
            for _ in range(25):
                path = flow.plan_route(inlet)
                self.assertTrue(path)
                self.assertLessEqual(len(path), policy.grid_rows + policy.grid_cols - 1)
                prev = inlet
                for seg_id in path:
                    seg = net.segments[seg_id]
                    self.assertEqual(seg.from_node, prev.to_node)
                    prev = seg
                self.assertTrue(prev.is_outlet)
                if len(path) == 1:
                    # never straight back out the side it came in
                    self.assertNotEqual(prev.heading, inlet.arrival_arm)

    def test_remaining_route_lists_intersections_ahead(self) -> None:
        net, _, flow = _flow(_quiet())
        vehicle = flow.add_vehicle("src:W->0", path=["0->1", "1->sink:E"], base_speed=10.0)
        self.assertEqual(vehicle.remaining_route(net), [0, 1])


class StopLineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.net, self.ctrl, self.flow = _flow(_quiet())
        self.ctrl.set_manual(0, "NS_GREEN")
        self.ctrl.set_manual(1, "EW_GREEN")
        self.vehicle = self.flow.add_vehicle(
            "src:W->0", path=["0->1", "1->sink:E"], base_speed=10.0,
        )

    def _run(self, seconds: float, dt: float = 0.5) -> None:
        now = 0.0
        for _ in range(int(seconds / dt)):
            now += dt
            self.flow.step(dt, now)

    def test_waits_at_red_then_crosses_on_green(self) -> None:
        self._run(30.0)
        self.assertEqual(self.vehicle.segment_id, "src:W->0")
        self.assertTrue(self.vehicle.waiting)
        self.assertEqual(self.vehicle.position, 1.0)
        self.assertEqual(self.vehicle.speed, 0.0)
        self.assertGreater(self.vehicle.wait_time, 0.0)
        self.assertEqual(self.flow.waiting_count(), 1)

        self.ctrl.set_manual(0, "EW_GREEN")
        self.flow.step(0.5, 30.5)
        self.assertEqual(self.vehicle.segment_id, "0->1")
        self.assertFalse(self.vehicle.waiting)
        self.assertEqual(self.net.segments["src:W->0"].occupancy, 0)
        self.assertEqual(self.net.segments["0->1"].occupancy, 1)

    def test_full_downstream_segment_blocks_even_on_green(self) -> None:
        self.flow.policy = dataclasses.replace(self.flow.policy, max_block_wait_s=None)
        self.ctrl.set_manual(0, "EW_GREEN")
        downstream = self.net.segments["0->1"]
        downstream.occupancy = downstream.capacity
        self._run(60.0)
        self.assertEqual(self.vehicle.segment_id, "src:W->0")
        self.assertTrue(self.vehicle.waiting)
        self.assertEqual(self.flow.squeezed, 0)

    def test_long_green_block_lets_vehicle_overfill_next_segment(self) -> None:
        self.ctrl.set_manual(0, "EW_GREEN")
        downstream = self.net.segments["0->1"]
        downstream.occupancy = downstream.capacity
        self._run(20.0)
        self.assertEqual(self.vehicle.segment_id, "src:W->0")
        self.assertGreater(self.vehicle.blocked_time, 0.0)

        self._run(10.0)
        self.assertEqual(self.vehicle.segment_id, "0->1")
        self.assertEqual(downstream.occupancy, downstream.capacity + 1)
        self.assertEqual(self.vehicle.blocked_time, 0.0)
        self.assertEqual(self.flow.squeezed, 1)

    def test_red_light_time_does_not_count_as_blocked(self) -> None:
        downstream = self.net.segments["0->1"]
        downstream.occupancy = downstream.capacity
        self._run(60.0)
        self.assertEqual(self.vehicle.segment_id, "src:W->0")
        self.assertEqual(self.vehicle.blocked_time, 0.0)

    def test_retires_at_the_end_of_its_outlet(self) -> None:
        self.ctrl.set_manual(0, "EW_GREEN")
        self._run(60.0)
        self.assertNotIn(self.vehicle.id, self.flow.vehicles)
        self.assertEqual(self.flow.total_retired, 1)
        self.assertEqual(len(self.flow.recent_retirements), 1)
        self.assertTrue(all(s.occupancy == 0 for s in self.net.segments.values()))
        self.assertAlmostEqual(self.vehicle.distance, 100.0 + 150.0 + 100.0)


class SpeedTests(unittest.TestCase):
    def _first_speed(self, weather: Weather) -> float:
        _, _, flow = _flow(_quiet(), weather=weather)
        vehicle = flow.add_vehicle("src:W->0", path=["0->1"], base_speed=12.0)
        flow.step(0.1, 0.1)
        return vehicle.speed

    def test_bad_weather_slows_vehicles(self) -> None:
        clear = self._first_speed(Weather.CLEAR)
        snow = self._first_speed(Weather.SNOW)
        self.assertGreater(clear, 0.0)
        self.assertAlmostEqual(snow / clear, WeatherModel(Weather.SNOW).speed_multiplier)

    def test_congestion_never_stops_a_moving_vehicle(self) -> None:
        policy = _quiet(congestion_penalty=1.0, min_crawl_fraction=0.15)
        self.assertEqual(congestion_multiplier(1.0, policy), 0.15)
        self.assertEqual(congestion_multiplier(0.0, policy), 1.0)
        _, _, flow = _flow(policy)
        inlet = flow.network.segments["src:W->0"]
        vehicles = [flow.add_vehicle(inlet.id, path=["0->1"], base_speed=10.0)
                    for _ in range(inlet.capacity)]
        flow.step(0.1, 0.1)
        for vehicle in vehicles:
            self.assertAlmostEqual(vehicle.speed, 10.0 * 0.15)


class SpawnTests(unittest.TestCase):
    def test_spawning_respects_segment_capacity_and_vehicle_cap(self) -> None:
        policy = EnginePolicy(grid_rows=2, grid_cols=2, arrival_rate_per_s=20.0,
                              segment_capacity=2, max_vehicles=10)
        net, _, flow = _flow(policy)
        for tick in range(20):
            flow.spawn(1.0, float(tick))
            self.assertLessEqual(len(flow.vehicles), policy.max_vehicles)
            for inlet in net.inlets():
                self.assertLessEqual(inlet.occupancy, inlet.capacity)
        self.assertEqual(len(flow.vehicles), policy.max_vehicles)
        self.assertGreater(flow.blocked_spawns, 0)

    def test_zero_arrival_rate_spawns_nothing(self) -> None:
        _, _, flow = _flow(_quiet())
        for tick in range(100):
            flow.step(0.5, tick * 0.5)
        self.assertEqual(flow.total_spawned, 0)


class ConservationTests(unittest.TestCase):
    def test_occupancy_matches_vehicles_and_distance_grows(self) -> None:
        policy = EnginePolicy(grid_rows=3, grid_cols=3, arrival_rate_per_s=0.1)
        net, ctrl, flow = _flow(policy, seed=11)
        last_distance = {}
        now = 0.0
        for _ in range(600):
            now += 0.5
            flow.step(0.5, now)
            ctrl.advance(0.5)
            counts = Counter(v.segment_id for v in flow.active())
            for seg in net.segments.values():
                self.assertEqual(seg.occupancy, counts.get(seg.id, 0))
                if seg.is_inlet:
                    self.assertLessEqual(seg.occupancy, seg.capacity)
            for vehicle in flow.active():
                self.assertGreaterEqual(vehicle.position, 0.0)
                self.assertLessEqual(vehicle.position, 1.0)
                self.assertGreaterEqual(vehicle.distance, last_distance.get(vehicle.id, 0.0))
                last_distance[vehicle.id] = vehicle.distance
        self.assertGreater(flow.total_retired, 0)
        self.assertEqual(flow.total_spawned, flow.total_retired + len(flow.vehicles))
        self.assertEqual(net.guard.count, 0)


class InvariantTests(unittest.TestCase):
    def test_vehicle_without_route_is_retired_and_reported(self) -> None:
        net, ctrl, flow = _flow(_quiet())
        flow.add_vehicle("src:W->0", path=[], base_speed=10.0)
        for tick in range(30):
            flow.step(1.0, float(tick))
        self.assertEqual(len(flow.vehicles), 0)
        self.assertEqual(net.guard.count, 1)
        self.assertEqual(net.segments["src:W->0"].occupancy, 0)

    def test_vehicle_without_route_raises_when_strict(self) -> None:
        _, _, flow = _flow(_quiet(strict_invariants=True))
        flow.add_vehicle("src:W->0", path=[], base_speed=10.0)
        with self.assertRaises(InvariantViolation):
            for tick in range(30):
                flow.step(1.0, float(tick))


if __name__ == "__main__":
    unittest.main()
