#!/usr/bin/env python3
"""
Signal-timing optimizer tests.
"""

from __future__ import annotations

import random
import unittest

from engine.event_log import EventLog, LogCategory
from engine.network import Phase, grid_network
from engine.optimizer import QuantumOptimizer, axis_pressure
from engine.policy import EnginePolicy
from engine.signals import SignalController


def _density(net, busy_arm_by_node):
    density = {seg_id: 0.0 for seg_id in net.segments}
    for node_id, arm in busy_arm_by_node.items():
        density[net.intersections[node_id].approaches[arm]] = 1.0
    return density


class OptimizerTests(unittest.TestCase):
    def test_congested_axis_gets_more_green(self) -> None:
        policy = EnginePolicy(grid_rows=1, grid_cols=1)
        net = grid_network(policy)
        log = EventLog(20)
        opt = QuantumOptimizer(policy, random.Random(42))

        report = opt.optimize(net, _density(net, {0: "N"}), frozenset(), now=5.0, event_log=log)

        self.assertEqual(report.applied, (0,))
        durations = net.intersections[0].durations
        self.assertGreater(durations[Phase.NS_GREEN], durations[Phase.EW_GREEN])
        self.assertLess(report.cost_after, report.cost_before)
        before, after = report.changes[0]
        self.assertEqual(before, {"NS": policy.green_s, "EW": policy.green_s})
        self.assertEqual(after["NS"], durations[Phase.NS_GREEN])

        messages = [e.message for e in log.by_category(LogCategory.OPTIMIZATION)]
        self.assertTrue(messages[0].startswith("Intersection 0: NS_GREEN"))
        self.assertTrue(messages[-1].startswith("Quantum optimization #1"))

    def test_durations_stay_within_bounds(self) -> None:
        policy = EnginePolicy(grid_rows=3, grid_cols=3, optimizer_iterations=200,
                              optimizer_max_step_s=30.0)
        net = grid_network(policy)
        rng = random.Random(5)
        lo, hi = policy.green_bounds()
        opt = QuantumOptimizer(policy, random.Random(9))
        for _ in range(10):
            density = {seg_id: rng.random() for seg_id in net.segments}
            jammed = frozenset(s for s in net.segments if rng.random() < 0.2)
            opt.optimize(net, density, jammed)
            for node in net.intersections.values():
                for phase in (Phase.NS_GREEN, Phase.EW_GREEN):
                    self.assertGreaterEqual(node.durations[phase], lo)
                    self.assertLessEqual(node.durations[phase], hi)
                self.assertEqual(node.durations[Phase.NS_YELLOW], policy.yellow_s)
                self.assertEqual(node.durations[Phase.EW_YELLOW], policy.yellow_s)
                self.assertEqual(node.durations[Phase.ALL_RED], policy.all_red_s)

    def test_out_of_range_timings_are_pulled_into_bounds(self) -> None:
        policy = EnginePolicy(grid_rows=1, grid_cols=1)
        net = grid_network(policy)
        node = net.intersections[0]
        node.durations = dict(node.durations)
        node.durations[Phase.NS_GREEN] = 90.0
        node.durations[Phase.EW_GREEN] = 1.0
        QuantumOptimizer(policy, random.Random(1)).optimize(net, _density(net, {0: "E"}), frozenset())
        self.assertLessEqual(node.durations[Phase.NS_GREEN], policy.max_green_s)
        self.assertGreaterEqual(node.durations[Phase.EW_GREEN], policy.min_green_s)

    def test_non_auto_intersections_are_skipped(self) -> None:
        policy = EnginePolicy(grid_rows=2, grid_cols=2)
        net = grid_network(policy)
        ctrl = SignalController(net, policy)
        ctrl.set_manual(1, "NS_GREEN")
        untouched = dict(net.intersections[1].durations)
        log = EventLog(20)

        busy = {i: "N" for i in net.intersections}
        report = QuantumOptimizer(policy, random.Random(42)).optimize(
            net, _density(net, busy), frozenset(), event_log=log,
        )
        self.assertEqual(report.skipped, (1,))
        self.assertNotIn(1, report.applied)
        self.assertEqual(net.intersections[1].durations, untouched)
        self.assertTrue(any("Intersection 1 skipped" in e.message for e in log.entries()))

    def test_preempted_corridor_is_skipped(self) -> None:
        policy = EnginePolicy(grid_rows=3, grid_cols=3)
        net = grid_network(policy)
        ctrl = SignalController(net, policy)
        ctrl.set_emergency(True)
        untouched = {i: dict(net.intersections[i].durations) for i in ctrl.emergency_route}
        log = EventLog(50)

        busy = {i: "N" for i in net.intersections}
        report = QuantumOptimizer(policy, random.Random(42)).optimize(
            net, _density(net, busy), frozenset(), event_log=log,
        )
        self.assertEqual(report.skipped, ctrl.emergency_route)
        for int_id, durations in untouched.items():
            self.assertNotIn(int_id, report.applied)
            self.assertEqual(net.intersections[int_id].durations, durations)
            self.assertTrue(any(f"Intersection {int_id} skipped" in e.message for e in log.entries()))
        self.assertTrue(set(report.applied) & {0, 1, 2, 6, 7, 8})

    def test_durations_are_replaced_not_mutated(self) -> None:
        policy = EnginePolicy(grid_rows=1, grid_cols=1)
        net = grid_network(policy)
        original = net.intersections[0].durations
        snapshot = dict(original)
        QuantumOptimizer(policy, random.Random(42)).optimize(net, _density(net, {0: "W"}), frozenset())
        self.assertIsNot(net.intersections[0].durations, original)
        self.assertEqual(original, snapshot)

    def test_same_seed_same_result(self) -> None:
        policy = EnginePolicy(grid_rows=3, grid_cols=3)
        results = []
        for _ in range(2):
            net = grid_network(policy)
            rng = random.Random(3)
            density = {seg_id: rng.random() for seg_id in net.segments}
            report = QuantumOptimizer(policy, random.Random(42)).optimize(net, density, frozenset())
            results.append((report.changes, [dict(n.durations) for n in net.intersections.values()]))
        self.assertEqual(results[0], results[1])

    def test_axis_pressure_counts_jams(self) -> None:
        policy = EnginePolicy(grid_rows=1, grid_cols=1)
        net = grid_network(policy)
        node = net.intersections[0]
        density = _density(net, {})
        density[node.approaches["E"]] = 0.4
        pressure = axis_pressure(net, node, density, frozenset({node.approaches["N"]}))
        self.assertAlmostEqual(pressure["EW"], 0.4)
        self.assertAlmostEqual(pressure["NS"], 0.5)


if __name__ == "__main__":
    unittest.main()
