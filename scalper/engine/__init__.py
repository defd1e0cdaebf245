"""Aggregation and decision engine."""

from scalper.engine.aggregator import CandleAggregator, fold_tick
from scalper.engine.scheduler import CycleScheduler, ShutdownHandler
from scalper.engine.snapshot import SnapshotHolder
from scalper.engine.state_machine import Decision, PositionStateMachine

__all__ = [
    "CandleAggregator",
    "CycleScheduler",
    "Decision",
    "PositionStateMachine",
    "ShutdownHandler",
    "SnapshotHolder",
    "fold_tick",
]
