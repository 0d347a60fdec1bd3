"""
engine: traffic simulation core
================================

Modules
-------
world
    :class:`TrafficEngine` facade: one tick function, one action surface.
engine_bridge
    :class:`EngineBridge` background-thread host.
policy
    :class:`EnginePolicy` tunable constants and speed helpers.
clock
    :class:`Clock` speed-scalable, pausable simulated time.
weather
    :class:`Weather` states and :class:`WeatherModel`.
network
    :class:`Intersection`, :class:`Segment`, :class:`RoadNetwork` and
    :func:`grid_network`.
signals
    :class:`SignalController` per-intersection light state machines.
vehicles
    :class:`Vehicle` and :class:`VehicleFlowModel`.
stats
    :class:`Stats` and :func:`compute_stats`.
optimizer
    :class:`QuantumOptimizer` annealing-based signal retiming.
event_log
    :class:`EventLog` bounded ring buffer of :class:`LogEntry`.
snapshot
    Immutable :class:`EngineSnapshot` views.
errors
    :class:`InvalidArgument`, :class:`InvariantViolation`,
    :class:`InvariantGuard`.
"""
