"""cronbell: an in-process cron scheduler for asynchronous jobs."""

from .cli import main as cli_main
from .config_loader import load_config
from .jobs import ExecutionError, FunctionUnit, RunnableUnit
from .rules import InvalidScheduleExpression, ScheduleExhausted, SchedulerError
from .services import Scheduler

__all__ = [
    "ExecutionError",
    "FunctionUnit",
    "InvalidScheduleExpression",
    "RunnableUnit",
    "ScheduleExhausted",
    "Scheduler",
    "SchedulerError",
    "cli_main",
    "load_config",
    "config",
    "collectors",
    "jobs",
    "metrics",
    "notifiers",
    "rules",
    "services",
]
