"""Configuration schema for a cronbell deployment.

This module defines dataclasses that describe how the scheduler and the jobs
it drives are configured.  Everything has a sensible default except the mail
credentials, which normally arrive through the environment.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Optional, Sequence

DEFAULT_TEAMS = (6667, 5995, 12396, 4608, 5378, 8840, 5752)
DEFAULT_BASE_URL = "https://gwapi.pwesports.cn"


@dataclass(slots=True)
class SchedulerConfig:
    """Timing knobs for the polling loop."""

    poll_interval: timedelta = timedelta(seconds=1)
    lookahead: int = 5
    timezone: Optional[str] = None
    overlap: str = "allow"  # "allow" or "skip"


@dataclass(slots=True)
class MatchApiConfig:
    """Connection parameters for the match listing HTTP API."""

    base_url: str = DEFAULT_BASE_URL
    teams: Sequence[int] = DEFAULT_TEAMS
    timeout: float = 10.0
    days: int = 3


@dataclass(slots=True)
class MailConfig:
    """Outgoing SMTP settings."""

    username: str = ""
    password: str = ""
    sender: str = ""
    reply_to: str = ""
    recipient: str = ""
    host: str = "smtp.163.com"
    port: int = 465
    use_ssl: bool = True
    timeout: float = 30.0


@dataclass(slots=True)
class JobConfig:
    """A named job bound to a cron expression."""

    name: str
    schedule: str
    kind: str = "match_digest"


@dataclass(slots=True)
class CronBellConfig:
    """Top-level configuration bundle."""

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    match_api: MatchApiConfig = field(default_factory=MatchApiConfig)
    mail: MailConfig = field(default_factory=MailConfig)
    jobs: Sequence[JobConfig] = field(
        default_factory=lambda: (JobConfig(name="csgo", schedule="0 1 * * * *"),)
    )
    template_dir: Optional[Path] = None
