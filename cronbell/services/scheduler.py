"""Polling scheduler that fires cron jobs as independent asyncio tasks."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, tzinfo
from typing import Callable, List, Optional, Set, Tuple, Union

from cronbell.config import SchedulerConfig
from cronbell.jobs.base import JobFunction, RunnableUnit, as_unit
from cronbell.metrics.sinks import (
    EXHAUSTED,
    FAILED,
    FIRED,
    REGISTERED,
    SKIPPED,
    STARTED,
    STOPPED,
    SUCCEEDED,
    DiagnosticsSink,
    LoggingSink,
    SchedulerEvent,
)
from cronbell.rules.policies import OverlapPolicy, policy_from_name
from cronbell.rules.recurrence import parse, resolve_timezone
from cronbell.services.slot import JobSlot

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class Scheduler:
    """Run a fixed set of jobs according to their cron expressions.

    Every ``poll_interval`` the loop compares the current time with the head
    of each job's lookahead buffer.  A due job has its buffer advanced first
    and is then dispatched as its own :class:`asyncio.Task`, so a slow or
    failing job never holds up the loop or its siblings.

    Because the buffer moves before the job runs, a job whose runs take
    longer than its period can overlap with itself.  Pass ``overlap="skip"``
    in :class:`SchedulerConfig` to drop such firings instead.
    """

    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        *,
        sink: Optional[DiagnosticsSink] = None,
        clock: Optional[Clock] = None,
        policy: Optional[OverlapPolicy] = None,
    ) -> None:
        self._config = config or SchedulerConfig()
        self._tz: tzinfo = resolve_timezone(self._config.timezone)
        self._sink: DiagnosticsSink = sink or LoggingSink()
        self._clock: Clock = clock or (lambda: datetime.now(self._tz))
        self._policy: OverlapPolicy = policy or policy_from_name(self._config.overlap)
        self._slots: List[JobSlot] = []
        self._exhaustion_reported: Set[JobSlot] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._stop: Optional[asyncio.Event] = None
        self._stop_requested = False
        self._running = False

    @classmethod
    def build(
        cls,
        config: Optional[SchedulerConfig] = None,
        *,
        sink: Optional[DiagnosticsSink] = None,
        clock: Optional[Clock] = None,
    ) -> "Scheduler":
        return cls(config, sink=sink, clock=clock)

    # ------------------------------------------------------------------
    # Registration and introspection
    @property
    def tz(self) -> tzinfo:
        return self._tz

    @property
    def slots(self) -> Tuple[JobSlot, ...]:
        return tuple(self._slots)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def register(self, expression: str, name: str, unit: Union[RunnableUnit, JobFunction]) -> "Scheduler":
        """Add a job; returns ``self`` so registrations can be chained.

        Raises :class:`InvalidScheduleExpression` for malformed expressions and
        :class:`ScheduleExhausted` for rules that never fire.  Either way the
        jobs registered earlier are left untouched.
        """

        if self._running:
            raise RuntimeError("cannot register jobs while the scheduler is running")
        rule = parse(expression, self._tz)
        slot = JobSlot(
            as_unit(unit),
            rule,
            name,
            now=self._clock(),
            lookahead=self._config.lookahead,
        )
        self._slots.append(slot)
        self._emit(REGISTERED, job=name, message=rule.describe())
        self._check_exhausted(slot)
        return self

    def describe(self) -> List[Tuple[str, str]]:
        """Return ``(name, rule description)`` for every job in order."""

        return [slot.describe() for slot in self._slots]

    def log_listing(self) -> None:
        """Report every registered job and its next fire time."""

        for slot in self._slots:
            name, rule = slot.describe()
            upcoming = slot.next_fire.isoformat() if slot.next_fire else "never"
            self._emit(STARTED, message=f"job {name}: {rule}, next run at {upcoming}")

    # ------------------------------------------------------------------
    # Loop
    def tick(self, now: Optional[datetime] = None) -> List[asyncio.Task]:
        """Evaluate every job once and dispatch those that are due.

        Must be called from within a running event loop.  Returns the tasks
        started during this pass.
        """

        current = now or self._clock()
        dispatched: List[asyncio.Task] = []
        for slot in self._slots:
            if not slot.peek_due(current):
                continue
            scheduled_for = slot.advance()
            self._check_exhausted(slot)
            if not self._policy.allows(slot):
                self._emit(SKIPPED, job=slot.name, scheduled_for=scheduled_for)
                continue
            self._emit(FIRED, job=slot.name, scheduled_for=scheduled_for)
            dispatched.append(self._dispatch(slot, scheduled_for))
        return dispatched

    async def run(self) -> None:
        """Poll until :meth:`stop` is called.

        The tick in progress when the stop request arrives is completed; no
        new jobs are dispatched afterwards.  Jobs already running are left to
        finish on their own, see :meth:`drain`.
        """

        if self._running:
            raise RuntimeError("scheduler is already running")
        self._stop = asyncio.Event()
        if self._stop_requested:
            self._stop.set()
        self._running = True
        interval = self._config.poll_interval.total_seconds()
        self._emit(STARTED, message=f"scheduler started with {len(self._slots)} job(s)")
        try:
            while not self._stop.is_set():
                self.tick()
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            self._stop_requested = False
            self._emit(STOPPED, message="scheduler stopped")

    def stop(self) -> None:
        """Ask the loop to exit after its current tick."""

        self._stop_requested = True
        if self._stop is not None:
            self._stop.set()

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight executions; returns ``False`` on timeout."""

        if not self._tasks:
            return True
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        return not pending

    # ------------------------------------------------------------------
    def _dispatch(self, slot: JobSlot, scheduled_for: datetime) -> asyncio.Task:
        slot.in_flight += 1
        task = asyncio.create_task(self._execute(slot, scheduled_for), name=f"cronbell:{slot.name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _execute(self, slot: JobSlot, scheduled_for: datetime) -> None:
        try:
            await slot.unit.execute()
        except Exception as exc:  # noqa: BLE001
            self._emit(FAILED, job=slot.name, scheduled_for=scheduled_for, error=exc)
        else:
            self._emit(SUCCEEDED, job=slot.name, scheduled_for=scheduled_for)
        finally:
            slot.in_flight -= 1

    def _check_exhausted(self, slot: JobSlot) -> None:
        if slot.exhausted and slot not in self._exhaustion_reported:
            self._exhaustion_reported.add(slot)
            self._emit(EXHAUSTED, job=slot.name)

    def _emit(
        self,
        kind: str,
        *,
        job: str = "",
        scheduled_for: Optional[datetime] = None,
        error: Optional[BaseException] = None,
        message: str = "",
    ) -> None:
        event = SchedulerEvent(
            kind=kind,
            at=self._clock(),
            job=job,
            scheduled_for=scheduled_for,
            error=error,
            message=message,
        )
        try:
            self._sink.report(event)
        except Exception:  # noqa: BLE001
            LOGGER.exception("diagnostics sink failed on %s event", kind)


__all__ = ["Clock", "Scheduler"]
