import asyncio
import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from cronbell.config import SchedulerConfig
from cronbell.jobs.base import ExecutionError
from cronbell.metrics import sinks
from cronbell.rules.recurrence import InvalidScheduleExpression, ScheduleExhausted
from cronbell.services.scheduler import Scheduler

T0 = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def at(self, seconds):
        self.now = T0 + timedelta(seconds=seconds)
        return self.now


class RecordingSink:
    def __init__(self):
        self.events = []

    def report(self, event):
        self.events.append(event)

    def kinds(self, kind):
        return [event for event in self.events if event.kind == kind]


class RecordingUnit:
    def __init__(self, calls, label, *, fail=False, gate=None):
        self._calls = calls
        self._label = label
        self._fail = fail
        self._gate = gate

    async def execute(self):
        self._calls.append(self._label)
        if self._gate is not None:
            await self._gate.wait()
        if self._fail:
            raise ExecutionError(f"{self._label} broke", cause=ValueError("upstream"))


class SchedulerRegistrationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock(T0)
        self.sink = RecordingSink()
        self.scheduler = Scheduler.build(sink=self.sink, clock=self.clock)

    def test_register_is_chainable_and_ordered(self):
        calls = []
        result = self.scheduler.register("0 1 * * * *", "hourly", RecordingUnit(calls, "a")).register(
            "*/10 * * * * *", "often", RecordingUnit(calls, "b")
        )
        self.assertIs(result, self.scheduler)
        self.assertEqual([name for name, _ in self.scheduler.describe()], ["hourly", "often"])
        self.assertEqual(len(self.sink.kinds(sinks.REGISTERED)), 2)

    def test_invalid_expression_leaves_prior_slots(self):
        calls = []
        self.scheduler.register("* * * * * *", "first", RecordingUnit(calls, "a"))
        with self.assertRaises(InvalidScheduleExpression):
            self.scheduler.register("* * * * * * * *", "broken", RecordingUnit(calls, "b"))
        self.assertEqual([name for name, _ in self.scheduler.describe()], ["first"])
        self.assertEqual(len(self.scheduler.slots[0].pending), 5)

    def test_rule_that_never_fires_is_rejected(self):
        rule = mock.Mock()
        rule.upcoming.return_value = iter(())
        rule.expression = "0 0 0 30 2 *"
        with mock.patch("cronbell.services.scheduler.parse", return_value=rule):
            with self.assertRaises(ScheduleExhausted):
                self.scheduler.register("0 0 0 30 2 *", "never", RecordingUnit([], "a"))
        self.assertEqual(self.scheduler.slots, ())

    def test_lookahead_from_config(self):
        scheduler = Scheduler.build(SchedulerConfig(lookahead=2), sink=self.sink, clock=self.clock)
        scheduler.register("* * * * * *", "tick", RecordingUnit([], "a"))
        self.assertEqual(len(scheduler.slots[0].pending), 2)

    def test_unknown_overlap_policy(self):
        with self.assertRaises(ValueError):
            Scheduler.build(SchedulerConfig(overlap="queue"))

    def test_plain_callable_is_wrapped(self):
        self.scheduler.register("* * * * * *", "func", lambda: None)
        self.assertEqual(len(self.scheduler.slots), 1)

    def test_unit_class_is_rejected(self):
        with self.assertRaises(TypeError):
            self.scheduler.register("* * * * * *", "class", RecordingUnit)
        self.assertEqual(self.scheduler.slots, ())

    def test_log_listing(self):
        self.scheduler.register("0 1 * * * *", "hourly", RecordingUnit([], "a"))
        self.scheduler.log_listing()
        messages = [event.message for event in self.sink.kinds(sinks.STARTED)]
        self.assertEqual(len(messages), 1)
        self.assertIn("job hourly", messages[0])


class SchedulerTickTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.clock = FakeClock(T0)
        self.sink = RecordingSink()
        self.calls = []

    def _scheduler(self, **kwargs):
        return Scheduler.build(SchedulerConfig(**kwargs), sink=self.sink, clock=self.clock)

    async def test_nothing_due(self):
        scheduler = self._scheduler().register("0 1 * * * *", "hourly", RecordingUnit(self.calls, "a"))
        self.assertEqual(scheduler.tick(self.clock.at(30)), [])
        self.assertEqual(self.calls, [])

    async def test_overdue_slot_fires_once_per_tick(self):
        scheduler = self._scheduler().register("* * * * * *", "every", RecordingUnit(self.calls, "a"))
        slot = scheduler.slots[0]
        now = self.clock.at(1000)

        tasks = scheduler.tick(now)
        self.assertEqual(len(tasks), 1)
        await asyncio.gather(*tasks)
        self.assertEqual(self.calls, ["a"])
        self.assertEqual(slot.next_fire, T0 + timedelta(seconds=2))
        self.assertEqual(len(slot.pending), 5)

        tasks = scheduler.tick(now)
        self.assertEqual(len(tasks), 1)
        await asyncio.gather(*tasks)
        self.assertEqual(self.calls, ["a", "a"])

    async def test_failure_is_isolated(self):
        scheduler = (
            self._scheduler()
            .register("* * * * * *", "broken", RecordingUnit(self.calls, "a", fail=True))
            .register("* * * * * *", "healthy", RecordingUnit(self.calls, "b"))
        )
        tasks = scheduler.tick(self.clock.at(2))
        await asyncio.gather(*tasks)
        self.assertEqual(sorted(self.calls), ["a", "b"])

        failures = self.sink.kinds(sinks.FAILED)
        self.assertEqual(len(failures), 1)
        self.assertEqual(failures[0].job, "broken")
        self.assertIsInstance(failures[0].error, ExecutionError)
        self.assertEqual([event.job for event in self.sink.kinds(sinks.SUCCEEDED)], ["healthy"])

        tasks = scheduler.tick(self.clock.at(3))
        await asyncio.gather(*tasks)
        self.assertEqual(len(self.calls), 4)

    async def test_unexpected_exception_is_reported(self):
        async def explode():
            raise KeyError("boom")

        scheduler = self._scheduler().register("* * * * * *", "explode", explode)
        await asyncio.gather(*scheduler.tick(self.clock.at(2)))
        failures = self.sink.kinds(sinks.FAILED)
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0].error, KeyError)

    async def test_identical_rules_fire_in_registration_order(self):
        scheduler = (
            self._scheduler()
            .register("*/5 * * * * *", "first", RecordingUnit(self.calls, "a"))
            .register("*/5 * * * * *", "second", RecordingUnit(self.calls, "b"))
        )
        tasks = scheduler.tick(self.clock.at(6))
        self.assertEqual(len(tasks), 2)
        self.assertEqual([event.job for event in self.sink.kinds(sinks.FIRED)], ["first", "second"])
        await asyncio.gather(*tasks)
        self.assertEqual(self.calls, ["a", "b"])

    async def test_slow_job_does_not_block_others(self):
        gate = asyncio.Event()
        scheduler = (
            self._scheduler()
            .register("* * * * * *", "slow", RecordingUnit(self.calls, "slow", gate=gate))
            .register("* * * * * *", "fast", RecordingUnit(self.calls, "fast"))
        )
        slow, fast = scheduler.tick(self.clock.at(2))
        await fast
        self.assertFalse(slow.done())
        self.assertEqual(len(scheduler.tick(self.clock.at(3))), 2)
        self.assertEqual(scheduler.in_flight, 3)
        gate.set()
        self.assertTrue(await scheduler.drain(1))
        self.assertEqual(scheduler.in_flight, 0)

    async def test_skip_policy_consumes_firing_while_running(self):
        gate = asyncio.Event()
        scheduler = self._scheduler(overlap="skip").register(
            "* * * * * *", "slow", RecordingUnit(self.calls, "slow", gate=gate)
        )
        slot = scheduler.slots[0]
        self.assertEqual(len(scheduler.tick(self.clock.at(2))), 1)
        await asyncio.sleep(0)
        self.assertEqual(slot.in_flight, 1)

        self.assertEqual(scheduler.tick(self.clock.at(3)), [])
        self.assertEqual(len(self.sink.kinds(sinks.SKIPPED)), 1)
        self.assertEqual(slot.next_fire, T0 + timedelta(seconds=3))

        gate.set()
        await scheduler.drain(1)
        self.assertEqual(slot.in_flight, 0)
        self.assertEqual(len(scheduler.tick(self.clock.at(4))), 1)
        await scheduler.drain(1)
        self.assertEqual(self.calls, ["slow", "slow"])

    async def test_drain_times_out(self):
        gate = asyncio.Event()
        scheduler = self._scheduler().register("* * * * * *", "hang", RecordingUnit(self.calls, "a", gate=gate))
        scheduler.tick(self.clock.at(2))
        self.assertFalse(await scheduler.drain(0.05))
        gate.set()
        self.assertTrue(await scheduler.drain(1))

    async def test_exhaustion_reported_once(self):
        rule = mock.Mock()
        rule.expression = "finite"
        rule.describe.return_value = "finite"
        rule.upcoming.return_value = iter([T0 + timedelta(seconds=1), T0 + timedelta(seconds=2)])
        with mock.patch("cronbell.services.scheduler.parse", return_value=rule):
            scheduler = self._scheduler().register("finite", "short", RecordingUnit(self.calls, "a"))

        self.assertEqual(len(self.sink.kinds(sinks.EXHAUSTED)), 1)
        for offset in (3, 4, 5, 6):
            await asyncio.gather(*scheduler.tick(self.clock.at(offset)))
        self.assertEqual(self.calls, ["a", "a"])
        self.assertEqual(len(self.sink.kinds(sinks.EXHAUSTED)), 1)
        rule.next_after.assert_not_called()


class SchedulerRunTests(unittest.IsolatedAsyncioTestCase):
    async def test_empty_scheduler_runs_until_stopped(self):
        sink = RecordingSink()
        scheduler = Scheduler.build(SchedulerConfig(poll_interval=timedelta(milliseconds=20)), sink=sink)
        runner = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.2)
        self.assertTrue(scheduler.running)
        self.assertFalse(runner.done())
        scheduler.stop()
        await asyncio.wait_for(runner, 1)
        self.assertFalse(scheduler.running)
        self.assertEqual(sink.kinds(sinks.FIRED), [])
        self.assertEqual(len(sink.kinds(sinks.STOPPED)), 1)

    async def test_every_second_fires_repeatedly(self):
        calls = []
        scheduler = Scheduler.build(SchedulerConfig(poll_interval=timedelta(seconds=1)), sink=RecordingSink())
        scheduler.register("* * * * * *", "every", RecordingUnit(calls, "a"))
        runner = asyncio.create_task(scheduler.run())
        await asyncio.sleep(3.5)
        scheduler.stop()
        await asyncio.wait_for(runner, 2)
        await scheduler.drain(1)
        self.assertGreaterEqual(len(calls), 3)

    async def test_failing_job_does_not_stop_loop(self):
        calls = []
        sink = RecordingSink()
        scheduler = Scheduler.build(SchedulerConfig(poll_interval=timedelta(milliseconds=50)), sink=sink)
        scheduler.register("* * * * * *", "broken", RecordingUnit(calls, "a", fail=True))
        runner = asyncio.create_task(scheduler.run())
        await asyncio.sleep(2.2)
        self.assertFalse(runner.done())
        scheduler.stop()
        await asyncio.wait_for(runner, 1)
        await scheduler.drain(1)
        self.assertGreaterEqual(len(sink.kinds(sinks.FAILED)), 1)
        self.assertEqual(len(sink.kinds(sinks.FAILED)), len(calls))

    async def test_stop_before_run_returns_immediately(self):
        scheduler = Scheduler.build(sink=RecordingSink())
        scheduler.stop()
        await asyncio.wait_for(scheduler.run(), 1)

    async def test_no_registration_while_running(self):
        scheduler = Scheduler.build(SchedulerConfig(poll_interval=timedelta(milliseconds=20)), sink=RecordingSink())
        runner = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.05)
        with self.assertRaises(RuntimeError):
            scheduler.register("* * * * * *", "late", lambda: None)
        scheduler.stop()
        await asyncio.wait_for(runner, 1)


if __name__ == "__main__":
    unittest.main()
