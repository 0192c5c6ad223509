"""Scheduler diagnostics: event sinks and run statistics."""

from .aggregator import JobStats, RunStatsAggregator, StatsSnapshot
from .sinks import DiagnosticsSink, FanoutSink, LoggingSink, SchedulerEvent

__all__ = [
    "DiagnosticsSink",
    "FanoutSink",
    "JobStats",
    "LoggingSink",
    "RunStatsAggregator",
    "SchedulerEvent",
    "StatsSnapshot",
]
