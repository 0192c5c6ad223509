"""Recurrence rules and dispatch policies."""

from .policies import AllowOverlap, OverlapPolicy, SkipIfRunning, policy_from_name
from .recurrence import (
    InvalidScheduleExpression,
    RecurrenceRule,
    ScheduleExhausted,
    SchedulerError,
    parse,
    resolve_timezone,
)

__all__ = [
    "AllowOverlap",
    "InvalidScheduleExpression",
    "OverlapPolicy",
    "RecurrenceRule",
    "ScheduleExhausted",
    "SchedulerError",
    "SkipIfRunning",
    "parse",
    "policy_from_name",
    "resolve_timezone",
]
