"""Cron-style recurrence rules backed by :mod:`croniter`."""
from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Iterator, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import CroniterBadDateError, CroniterError, croniter
from dateutil import tz as dateutil_tz

# seconds minutes hours day-of-month month day-of-week [year]
_FIELD_COUNTS = (6, 7)


class SchedulerError(RuntimeError):
    """Base class for scheduling errors."""


class InvalidScheduleExpression(SchedulerError, ValueError):
    """Raised when a cron expression cannot be parsed."""


class ScheduleExhausted(SchedulerError):
    """Raised when a rule has no occurrence after the reference instant."""


def resolve_timezone(name: Optional[str] = None) -> tzinfo:
    """Return the zone called ``name`` or the local zone of the process.

    The local zone follows daylight saving changes for as long as the process
    runs, so a daily job keeps its wall-clock hour across transitions.
    """

    if not name:
        return dateutil_tz.tzlocal()
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"unknown timezone: {name}") from exc


class RecurrenceRule:
    """An immutable cron expression evaluated in a fixed time zone.

    Expressions use the six or seven field grammar with seconds first and an
    optional trailing year, e.g. ``"0 1 * * * *"`` fires at minute one of every
    hour and ``"*/10 * * * * *"`` every ten seconds.
    """

    __slots__ = ("_expression", "_tz")

    def __init__(self, expression: str, tz: tzinfo) -> None:
        self._expression = expression
        self._tz = tz

    @property
    def expression(self) -> str:
        return self._expression

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def next_after(self, instant: datetime) -> datetime:
        """Return the first occurrence strictly later than ``instant``."""

        reference = self._localize(instant)
        try:
            # Whole seconds only: the first match after the truncated reference
            # is still strictly after the reference itself.
            base = reference.replace(microsecond=0)
            iterator = croniter(self._expression, base, second_at_beginning=True)
            candidate = iterator.get_next(datetime)
            while candidate <= reference:
                candidate = iterator.get_next(datetime)
        except CroniterBadDateError as exc:
            raise ScheduleExhausted(
                f"{self._expression!r} has no occurrence after {reference.isoformat()}"
            ) from exc
        return candidate

    def upcoming(self, start: datetime) -> Iterator[datetime]:
        """Yield occurrences after ``start`` until the rule runs dry."""

        current = start
        while True:
            try:
                current = self.next_after(current)
            except ScheduleExhausted:
                return
            yield current

    def describe(self) -> str:
        return f"{self._expression} ({_zone_label(self._tz)})"

    def _localize(self, instant: datetime) -> datetime:
        if instant.tzinfo is None:
            return instant.replace(tzinfo=self._tz)
        return instant.astimezone(self._tz)

    def __repr__(self) -> str:
        return f"RecurrenceRule({self.describe()!r})"


def parse(expression: str, tz: Optional[tzinfo] = None) -> RecurrenceRule:
    """Validate ``expression`` and return a :class:`RecurrenceRule`.

    Raises :class:`InvalidScheduleExpression` straight away for malformed text
    so that a typo is reported when a job is registered rather than silently
    never firing.
    """

    if not isinstance(expression, str):
        raise InvalidScheduleExpression(f"cron expression must be a string, got {expression!r}")
    normalized = " ".join(expression.split())
    field_count = len(normalized.split(" ")) if normalized else 0
    if field_count not in _FIELD_COUNTS:
        raise InvalidScheduleExpression(
            f"{expression!r}: expected 6 or 7 fields, got {field_count}"
        )
    zone = tz if tz is not None else resolve_timezone()
    try:
        croniter(normalized, datetime.now(zone), second_at_beginning=True)
    except (CroniterError, ValueError, KeyError) as exc:
        raise InvalidScheduleExpression(f"{expression!r}: {exc}") from exc
    return RecurrenceRule(normalized, zone)


def _zone_label(tz: tzinfo) -> str:
    key = getattr(tz, "key", None)
    if key:
        return str(key)
    return str(datetime.now(tz).tzname() or tz)


__all__ = [
    "InvalidScheduleExpression",
    "RecurrenceRule",
    "ScheduleExhausted",
    "SchedulerError",
    "parse",
    "resolve_timezone",
]
