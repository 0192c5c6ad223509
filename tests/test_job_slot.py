import unittest
from datetime import datetime, timedelta, timezone

from cronbell.jobs.base import FunctionUnit
from cronbell.rules.recurrence import ScheduleExhausted, parse
from cronbell.services.slot import JobSlot

T0 = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


class FiniteRule:
    """A rule with a fixed list of occurrences."""

    expression = "finite"

    def __init__(self, instants):
        self._instants = sorted(instants)

    def next_after(self, instant):
        for candidate in self._instants:
            if candidate > instant:
                return candidate
        raise ScheduleExhausted("no more occurrences")

    def upcoming(self, start):
        current = start
        while True:
            try:
                current = self.next_after(current)
            except ScheduleExhausted:
                return
            yield current

    def describe(self):
        return "finite"


async def _noop():
    return None


def _seconds(*offsets):
    return [T0 + timedelta(seconds=offset) for offset in offsets]


class JobSlotTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rule = parse("*/10 * * * * *", timezone.utc)
        self.slot = JobSlot(FunctionUnit(_noop), self.rule, "ticker", now=T0)

    def test_prefills_lookahead(self):
        self.assertEqual(self.slot.pending, tuple(_seconds(10, 20, 30, 40, 50)))
        self.assertEqual(self.slot.next_fire, T0 + timedelta(seconds=10))
        self.assertFalse(self.slot.exhausted)

    def test_peek_due_is_strict(self):
        head = self.slot.next_fire
        self.assertFalse(self.slot.peek_due(head - timedelta(seconds=1)))
        self.assertFalse(self.slot.peek_due(head))
        self.assertTrue(self.slot.peek_due(head + timedelta(microseconds=1)))

    def test_advance_pops_head_and_extends_tail(self):
        fired = self.slot.advance()
        self.assertEqual(fired, T0 + timedelta(seconds=10))
        self.assertEqual(self.slot.pending, tuple(_seconds(20, 30, 40, 50, 60)))

    def test_window_stays_full_and_sorted(self):
        for _ in range(50):
            self.slot.advance()
            pending = self.slot.pending
            self.assertEqual(len(pending), 5)
            self.assertEqual(list(pending), sorted(pending))
        self.assertEqual(self.slot.next_fire, T0 + timedelta(seconds=510))

    def test_advance_does_not_depend_on_wall_clock(self):
        # Far behind schedule: each advance still moves exactly one step.
        late = T0 + timedelta(hours=1)
        self.assertTrue(self.slot.peek_due(late))
        self.slot.advance()
        self.assertTrue(self.slot.peek_due(late))
        self.assertEqual(self.slot.next_fire, T0 + timedelta(seconds=20))

    def test_custom_lookahead(self):
        slot = JobSlot(FunctionUnit(_noop), self.rule, "single", now=T0, lookahead=1)
        self.assertEqual(slot.pending, (T0 + timedelta(seconds=10),))
        slot.advance()
        self.assertEqual(slot.pending, (T0 + timedelta(seconds=20),))

    def test_invalid_lookahead(self):
        with self.assertRaises(ValueError):
            JobSlot(FunctionUnit(_noop), self.rule, "bad", now=T0, lookahead=0)

    def test_describe(self):
        self.assertEqual(self.slot.describe(), ("ticker", "*/10 * * * * * (UTC)"))


class ExhaustedRuleTests(unittest.TestCase):
    def test_rule_without_occurrences_fails_at_construction(self):
        rule = FiniteRule(_seconds(-10))
        with self.assertRaises(ScheduleExhausted):
            JobSlot(FunctionUnit(_noop), rule, "never", now=T0)

    def test_partial_buffer_marks_slot_exhausted(self):
        slot = JobSlot(FunctionUnit(_noop), FiniteRule(_seconds(1, 2)), "short", now=T0)
        self.assertTrue(slot.exhausted)
        self.assertEqual(slot.pending, tuple(_seconds(1, 2)))

    def test_slot_drains_then_goes_inert(self):
        slot = JobSlot(FunctionUnit(_noop), FiniteRule(_seconds(1, 2, 3, 4, 5, 6)), "six", now=T0)
        self.assertFalse(slot.exhausted)

        self.assertEqual(slot.advance(), T0 + timedelta(seconds=1))
        self.assertEqual(len(slot.pending), 5)
        self.assertFalse(slot.exhausted)

        slot.advance()
        self.assertTrue(slot.exhausted)
        self.assertEqual(slot.pending, tuple(_seconds(3, 4, 5, 6)))

        for _ in range(4):
            slot.advance()
        self.assertEqual(slot.pending, ())
        self.assertIsNone(slot.next_fire)
        self.assertFalse(slot.peek_due(T0 + timedelta(days=1)))
        with self.assertRaises(ScheduleExhausted):
            slot.advance()


if __name__ == "__main__":
    unittest.main()
