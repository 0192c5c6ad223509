"""A job bound to its recurrence rule and lookahead buffer."""
from __future__ import annotations

from collections import deque
from datetime import datetime
from typing import Deque, Optional, Tuple

from cronbell.jobs.base import RunnableUnit
from cronbell.rules.recurrence import RecurrenceRule, ScheduleExhausted

DEFAULT_LOOKAHEAD = 5


class JobSlot:
    """Keeps the next ``lookahead`` fire times of one job.

    The buffer head answers "is this job due" in constant time.  Each firing
    pops the head and appends the occurrence following the current tail, so
    the window stays the same size for as long as the rule keeps producing
    instants.
    """

    def __init__(
        self,
        unit: RunnableUnit,
        rule: RecurrenceRule,
        name: str,
        *,
        now: datetime,
        lookahead: int = DEFAULT_LOOKAHEAD,
    ) -> None:
        if lookahead < 1:
            raise ValueError("lookahead must be at least 1")
        self.name = name
        self.rule = rule
        self.in_flight = 0
        self.exhausted = False
        self._unit = unit
        self._lookahead = lookahead
        self._pending: Deque[datetime] = deque()

        for instant in rule.upcoming(now):
            self._pending.append(instant)
            if len(self._pending) == lookahead:
                break
        if not self._pending:
            raise ScheduleExhausted(f"job {name!r}: {rule.expression!r} never fires after {now.isoformat()}")
        if len(self._pending) < lookahead:
            self.exhausted = True

    @property
    def pending(self) -> Tuple[datetime, ...]:
        return tuple(self._pending)

    @property
    def lookahead(self) -> int:
        return self._lookahead

    @property
    def next_fire(self) -> Optional[datetime]:
        return self._pending[0] if self._pending else None

    @property
    def unit(self) -> RunnableUnit:
        return self._unit

    def peek_due(self, now: datetime) -> bool:
        """Return ``True`` if the earliest pending instant is before ``now``."""

        return bool(self._pending) and self._pending[0] < now

    def advance(self) -> datetime:
        """Consume the earliest pending instant and top the buffer up again.

        Returns the consumed instant.  Once the rule stops producing
        occurrences ``exhausted`` is set and the buffer drains naturally.
        """

        if not self._pending:
            raise ScheduleExhausted(f"job {self.name!r} has nothing left to fire")
        fired = self._pending.popleft()
        if not self.exhausted:
            tail = self._pending[-1] if self._pending else fired
            try:
                self._pending.append(self.rule.next_after(tail))
            except ScheduleExhausted:
                self.exhausted = True
        return fired

    def describe(self) -> Tuple[str, str]:
        return self.name, self.rule.describe()

    def __repr__(self) -> str:
        return f"JobSlot(name={self.name!r}, rule={self.rule.describe()!r}, next={self.next_fire})"
