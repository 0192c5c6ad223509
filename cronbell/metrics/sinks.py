"""Diagnostic events emitted by the scheduler and the sinks consuming them."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Protocol, Tuple

LOGGER = logging.getLogger("cronbell.scheduler")

REGISTERED = "registered"
STARTED = "started"
FIRED = "fired"
SKIPPED = "skipped"
SUCCEEDED = "succeeded"
FAILED = "failed"
EXHAUSTED = "exhausted"
STOPPED = "stopped"


@dataclass(slots=True)
class SchedulerEvent:
    """Something observable that happened inside the scheduler."""

    kind: str
    at: datetime
    job: str = ""
    scheduled_for: Optional[datetime] = None
    error: Optional[BaseException] = None
    message: str = ""


class DiagnosticsSink(Protocol):
    """Receives every :class:`SchedulerEvent`; must not raise."""

    def report(self, event: SchedulerEvent) -> None:
        ...


class LoggingSink:
    """Forward events to :mod:`logging`."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or LOGGER

    def report(self, event: SchedulerEvent) -> None:
        kind = event.kind
        if kind == FAILED:
            self._logger.error(
                "job %s failed (scheduled for %s): %s",
                event.job,
                _fmt(event.scheduled_for),
                event.error,
                exc_info=_exc_info(event.error),
            )
        elif kind == EXHAUSTED:
            self._logger.warning("job %s has no further occurrences and will stop firing", event.job)
        elif kind == SKIPPED:
            self._logger.warning(
                "job %s skipped firing for %s: previous run still in progress",
                event.job,
                _fmt(event.scheduled_for),
            )
        elif kind == FIRED:
            self._logger.info("job %s fired for %s", event.job, _fmt(event.scheduled_for))
        elif kind == SUCCEEDED:
            self._logger.debug("job %s finished", event.job)
        elif kind == REGISTERED:
            self._logger.info("job %s registered: %s", event.job, event.message)
        elif event.message:
            self._logger.info("%s", event.message)
        else:
            self._logger.info("scheduler %s", kind)


class FanoutSink:
    """Deliver each event to several sinks in order."""

    def __init__(self, sinks: Iterable[DiagnosticsSink]) -> None:
        self._sinks: Tuple[DiagnosticsSink, ...] = tuple(sinks)

    def report(self, event: SchedulerEvent) -> None:
        for sink in self._sinks:
            sink.report(event)


def _fmt(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M:%S%z")


def _exc_info(error: Optional[BaseException]):
    if error is None:
        return False
    return (type(error), error, error.__traceback__)


__all__ = [
    "DiagnosticsSink",
    "EXHAUSTED",
    "FAILED",
    "FIRED",
    "FanoutSink",
    "LoggingSink",
    "REGISTERED",
    "SKIPPED",
    "STARTED",
    "STOPPED",
    "SUCCEEDED",
    "SchedulerEvent",
]
