"""Daily digest of upcoming matches delivered by e-mail."""
from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, tzinfo
from typing import Callable, List, Optional

from cronbell.collectors.match_client import Match, MatchApiError, MatchClient
from cronbell.jobs.base import ExecutionError
from cronbell.notifiers.mail import MailError, Mailer
from cronbell.notifiers.render import DigestRenderer, RenderError

LOGGER = logging.getLogger(__name__)

DIGEST_SUBJECT = "csgo matches near 3 days"


class MatchDigestJob:
    """Collect the next ``days`` days of matches, render them, mail them."""

    def __init__(
        self,
        client: MatchClient,
        renderer: DigestRenderer,
        mailer: Mailer,
        *,
        days: int = 3,
        tz: Optional[tzinfo] = None,
        today: Optional[Callable[[], date]] = None,
        subject: str = DIGEST_SUBJECT,
    ) -> None:
        if days < 1:
            raise ValueError("days must be at least 1")
        self._client = client
        self._renderer = renderer
        self._mailer = mailer
        self._days = days
        self._subject = subject
        self._today = today or (lambda: datetime.now(tz).date())

    def window(self) -> List[date]:
        start = self._today()
        return [start + timedelta(days=offset) for offset in range(self._days)]

    async def execute(self) -> None:
        matches: List[Match] = []
        try:
            for day in self.window():
                matches.extend(await self._client.get_matches_by_date(day))
            content = self._renderer.render(matches)
            await asyncio.to_thread(self._mailer.send, self._subject, content)
        except (MatchApiError, RenderError, MailError) as exc:
            raise ExecutionError(f"match digest failed: {exc}", cause=exc) from exc
        LOGGER.info("sent digest with %d match(es)", len(matches))

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["DIGEST_SUBJECT", "MatchDigestJob"]
