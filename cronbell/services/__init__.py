"""Service orchestration helpers."""

from .app_service import CronBellService, ServiceDependencies
from .scheduler import Scheduler
from .slot import JobSlot

__all__ = ["CronBellService", "JobSlot", "Scheduler", "ServiceDependencies"]
