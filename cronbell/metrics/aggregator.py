"""Per-job run statistics collected from scheduler events."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from cronbell.metrics.sinks import (
    EXHAUSTED,
    FAILED,
    FIRED,
    SKIPPED,
    SUCCEEDED,
    SchedulerEvent,
)


@dataclass(slots=True)
class JobStats:
    """Counters for a single job."""

    job: str
    fired: int
    succeeded: int
    failed: int
    skipped: int
    last_fired_at: Optional[datetime]
    last_error: Optional[str]
    exhausted: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "job": self.job,
            "fired": self.fired,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "last_fired_at": self.last_fired_at.isoformat() if self.last_fired_at else None,
            "last_error": self.last_error,
            "exhausted": self.exhausted,
        }


@dataclass(slots=True)
class StatsSnapshot:
    """Serializable container for the aggregated statistics."""

    generated_at: datetime
    jobs: Iterable[JobStats]

    def to_dict(self) -> Dict[str, object]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "jobs": [stats.to_dict() for stats in self.jobs],
        }


class RunStatsAggregator:
    """A diagnostics sink that counts firings and outcomes per job.

    Jobs keep the order in which they were first seen, which matches the
    scheduler's registration order.
    """

    def __init__(self) -> None:
        self._state: Dict[str, _MutableJobStats] = {}
        self._lock = threading.Lock()

    def report(self, event: SchedulerEvent) -> None:
        if not event.job:
            return
        with self._lock:
            stats = self._state.setdefault(event.job, _MutableJobStats(event.job))
            if event.kind == FIRED:
                stats.fired += 1
                stats.last_fired_at = event.scheduled_for or event.at
            elif event.kind == SUCCEEDED:
                stats.succeeded += 1
            elif event.kind == FAILED:
                stats.failed += 1
                stats.last_error = str(event.error) if event.error is not None else event.message
            elif event.kind == SKIPPED:
                stats.skipped += 1
            elif event.kind == EXHAUSTED:
                stats.exhausted = True

    def get(self, job: str) -> Optional[JobStats]:
        with self._lock:
            stats = self._state.get(job)
            return stats.freeze() if stats else None

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            jobs = [stats.freeze() for stats in self._state.values()]
        return StatsSnapshot(generated_at=datetime.now(timezone.utc), jobs=jobs)


@dataclass(slots=True)
class _MutableJobStats:
    job: str
    fired: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    last_fired_at: Optional[datetime] = None
    last_error: Optional[str] = None
    exhausted: bool = False

    def freeze(self) -> JobStats:
        return JobStats(
            job=self.job,
            fired=self.fired,
            succeeded=self.succeeded,
            failed=self.failed,
            skipped=self.skipped,
            last_fired_at=self.last_fired_at,
            last_error=self.last_error,
            exhausted=self.exhausted,
        )


__all__ = ["JobStats", "RunStatsAggregator", "StatsSnapshot"]
