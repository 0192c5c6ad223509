"""Utilities to load :mod:`cronbell.config` structures from YAML files."""
from __future__ import annotations

import datetime as _dt
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .config import (
    DEFAULT_BASE_URL,
    DEFAULT_TEAMS,
    CronBellConfig,
    JobConfig,
    MailConfig,
    MatchApiConfig,
    SchedulerConfig,
)

_DURATION_UNITS = {
    "s": _dt.timedelta(seconds=1),
    "m": _dt.timedelta(minutes=1),
    "h": _dt.timedelta(hours=1),
    "d": _dt.timedelta(days=1),
}

_OVERLAP_POLICIES = ("allow", "skip")

# Environment variables take precedence over the file for mail secrets.
_MAIL_ENV = {
    "username": "MAIL_USERNAME",
    "password": "MAIL_PASSWORD",
    "sender": "MAIL_FROM",
    "reply_to": "MAIL_REPLY_TO",
    "recipient": "MAIL_TO",
}


def load_config(path: Optional[Path], environ: Optional[Mapping[str, str]] = None) -> CronBellConfig:
    """Load a configuration file into :class:`CronBellConfig`.

    The loader accepts human friendly values such as ``"30s"`` or ``"5m"`` for
    durations and converts them into :class:`datetime.timedelta` objects.  Fields
    omitted in the YAML file fall back to the defaults declared in
    :mod:`cronbell.config`.  ``path`` may be ``None`` to run purely on defaults
    and environment variables.
    """

    raw: Mapping[str, Any] = _load_yaml(path) if path is not None else {}
    env = os.environ if environ is None else environ

    scheduler_section = raw.get("scheduler") or {}
    overlap = str(scheduler_section.get("overlap", "allow")).lower()
    if overlap not in _OVERLAP_POLICIES:
        raise ValueError(f"unknown overlap policy: {overlap}")
    lookahead = int(scheduler_section.get("lookahead", 5))
    if lookahead < 1:
        raise ValueError("scheduler lookahead must be at least 1")
    poll_interval = _parse_duration(scheduler_section.get("poll_interval", "1s"))
    if poll_interval <= _dt.timedelta(0):
        raise ValueError("scheduler poll interval must be positive")
    scheduler = SchedulerConfig(
        poll_interval=poll_interval,
        lookahead=lookahead,
        timezone=scheduler_section.get("timezone") or None,
        overlap=overlap,
    )

    api_section = raw.get("match_api") or {}
    match_api = MatchApiConfig(
        base_url=str(api_section.get("base_url", DEFAULT_BASE_URL)),
        teams=tuple(int(team) for team in api_section.get("teams", DEFAULT_TEAMS)),
        timeout=float(api_section.get("timeout", 10.0)),
        days=int(api_section.get("days", 3)),
    )

    mail_section = dict(raw.get("mail") or {})
    for key, variable in _MAIL_ENV.items():
        if env.get(variable):
            mail_section[key] = env[variable]
    mail = MailConfig(
        username=str(mail_section.get("username", "")),
        password=str(mail_section.get("password", "")),
        sender=str(mail_section.get("sender", "")),
        reply_to=str(mail_section.get("reply_to", "")),
        recipient=str(mail_section.get("recipient", "")),
        host=str(mail_section.get("host", "smtp.163.com")),
        port=int(mail_section.get("port", 465)),
        use_ssl=bool(mail_section.get("use_ssl", True)),
        timeout=float(mail_section.get("timeout", 30.0)),
    )

    jobs_section = raw.get("jobs")
    if jobs_section:
        jobs = tuple(
            JobConfig(
                name=str(item["name"]),
                schedule=str(item["schedule"]),
                kind=str(item.get("kind", "match_digest")),
            )
            for item in jobs_section
        )
    else:
        jobs = CronBellConfig().jobs

    template_dir = Path(raw["template_dir"]) if raw.get("template_dir") else None

    return CronBellConfig(
        scheduler=scheduler,
        match_api=match_api,
        mail=mail,
        jobs=jobs,
        template_dir=template_dir,
    )


def _load_yaml(path: Path) -> Mapping[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError("configuration root must be a mapping")
    return data


def _parse_duration(value: Any) -> _dt.timedelta:
    if isinstance(value, _dt.timedelta):
        return value
    if isinstance(value, (int, float)):
        return _dt.timedelta(seconds=float(value))
    if not isinstance(value, str):
        raise ValueError(f"unsupported duration value: {value!r}")
    value = value.strip()
    if value.isdigit():
        return _dt.timedelta(seconds=int(value))
    unit = value[-1].lower()
    if unit not in _DURATION_UNITS:
        raise ValueError(f"unknown duration unit: {value}")
    amount = float(value[:-1])
    base = _DURATION_UNITS[unit]
    return _dt.timedelta(seconds=base.total_seconds() * amount)
