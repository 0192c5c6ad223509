"""High-level orchestration service."""
from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from cronbell.collectors import MatchClient
from cronbell.config import CronBellConfig, JobConfig
from cronbell.jobs.base import LazyUnit, RunnableUnit
from cronbell.jobs.match_digest import MatchDigestJob
from cronbell.metrics import FanoutSink, LoggingSink, RunStatsAggregator, StatsSnapshot
from cronbell.notifiers import DigestRenderer, Mailer
from cronbell.services.scheduler import Scheduler

LOGGER = logging.getLogger(__name__)

UnitFactory = Callable[[CronBellConfig, Scheduler], RunnableUnit]


def _match_digest_factory(config: CronBellConfig, scheduler: Scheduler) -> RunnableUnit:
    return MatchDigestJob(
        MatchClient(config.match_api),
        DigestRenderer(config.template_dir, tz=scheduler.tz),
        Mailer(config.mail),
        days=config.match_api.days,
        tz=scheduler.tz,
    )


DEFAULT_FACTORIES: Dict[str, UnitFactory] = {
    "match_digest": _match_digest_factory,
}


@dataclass(slots=True)
class ServiceDependencies:
    """Bundle of pluggable components used by :class:`CronBellService`."""

    factories: Dict[str, UnitFactory] = field(default_factory=lambda: dict(DEFAULT_FACTORIES))
    stats: RunStatsAggregator = field(default_factory=RunStatsAggregator)
    scheduler: Optional[Scheduler] = None


class CronBellService:
    """Builds the scheduler from configuration and runs it until signalled."""

    def __init__(self, config: CronBellConfig, deps: Optional[ServiceDependencies] = None) -> None:
        self._config = config
        self._deps = deps or ServiceDependencies()
        self._scheduler: Optional[Scheduler] = None
        self._units: List[RunnableUnit] = []

    @property
    def scheduler(self) -> Scheduler:
        if self._scheduler is None:
            raise RuntimeError("service has not been bootstrapped")
        return self._scheduler

    @property
    def stats(self) -> RunStatsAggregator:
        return self._deps.stats

    def bootstrap(self, *, build_units: bool = True) -> Scheduler:
        """Create the scheduler and register every configured job.

        Configuration errors (unknown job kind, bad cron expression) propagate
        so the process refuses to start.  With ``build_units=False`` each unit
        is wrapped in a :class:`LazyUnit`, which is enough to inspect the
        schedule without credentials or open connections.
        """

        scheduler = self._deps.scheduler or Scheduler.build(
            self._config.scheduler,
            sink=FanoutSink([LoggingSink(), self._deps.stats]),
        )
        for job in self._config.jobs:
            unit = self._build_unit(job, scheduler, lazy=not build_units)
            scheduler.register(job.schedule, job.name, unit)
            self._units.append(unit)
        self._scheduler = scheduler
        return scheduler

    async def run_forever(
        self, *, install_signal_handlers: bool = True, drain_timeout: float = 30.0
    ) -> StatsSnapshot:
        """Run the scheduler until SIGINT/SIGTERM or :meth:`stop`.

        Returns the run statistics gathered while the scheduler was up.
        """

        scheduler = self._scheduler or self.bootstrap()
        loop = asyncio.get_running_loop()
        installed = []
        if install_signal_handlers:
            for signum in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(signum, self._on_signal, signum)
                except (NotImplementedError, RuntimeError):  # pragma: no cover - non-unix
                    continue
                installed.append(signum)

        scheduler.log_listing()
        LOGGER.info("app start")
        try:
            await scheduler.run()
        finally:
            for signum in installed:
                loop.remove_signal_handler(signum)
            if not await scheduler.drain(drain_timeout):
                LOGGER.warning("abandoning %d job(s) still running after %.0fs", scheduler.in_flight, drain_timeout)
            await self._close_units()
            LOGGER.info("app quit")
        return self.stats.snapshot()

    def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.stop()

    # ------------------------------------------------------------------
    def _build_unit(self, job: JobConfig, scheduler: Scheduler, *, lazy: bool = False) -> RunnableUnit:
        try:
            factory = self._deps.factories[job.kind]
        except KeyError:
            raise ValueError(f"job {job.name!r}: unknown kind {job.kind!r}") from None
        if lazy:
            return LazyUnit(lambda: factory(self._config, scheduler))
        return factory(self._config, scheduler)

    def _on_signal(self, signum: int) -> None:
        LOGGER.info("receive signal %s", signal.Signals(signum).name)
        self.stop()

    async def _close_units(self) -> None:
        for unit in self._units:
            aclose = getattr(unit, "aclose", None)
            if aclose is None:
                continue
            try:
                await aclose()
            except Exception:  # noqa: BLE001
                LOGGER.exception("failed to close %r", unit)
