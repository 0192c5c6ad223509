"""HTTP client for the esports match listing API."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

import httpx

from cronbell.config import MatchApiConfig

MATCH_LIST_ENDPOINT = "/eventcenter/app/csgo/event/getMatchList"
MATCH_TIME_FORMAT = "%Y-%m-%d+00:00:00"

DEFAULT_HEADERS = {
    "Accept-Encoding": "gzip, deflate, br",
    "User-Agent": "PostmanRuntime/7.32.3",
}


class MatchApiError(RuntimeError):
    """Raised when the match listing cannot be fetched or understood."""


@dataclass(slots=True)
class Team:
    name: str
    logo: str

    def to_dict(self) -> Dict[str, object]:
        return {"name": self.name, "logo": self.logo}


@dataclass(slots=True)
class MatchInfo:
    start_time: int  # unix seconds
    bo: str
    name: str

    def to_dict(self) -> Dict[str, object]:
        return {"start_time": self.start_time, "bo": self.bo, "name": self.name}


@dataclass(slots=True)
class Match:
    """A scheduled match between two teams, trimmed for rendering."""

    team1: Team
    team2: Team
    info: MatchInfo

    def to_dict(self) -> Dict[str, object]:
        return {
            "team1": self.team1.to_dict(),
            "team2": self.team2.to_dict(),
            "info": self.info.to_dict(),
        }


class MatchClient:
    """Thin async wrapper around ``getMatchList``.

    The endpoint takes a ``matchTime`` query of the form
    ``YYYY-MM-DD+00:00:00`` and answers with
    ``{"code": int, "message": str, "result": {"matchResponse": {"dtoList": [...]}}}``.
    Only matches involving one of the configured team ids are returned.
    """

    def __init__(self, config: MatchApiConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._config = config
        self._teams = frozenset(int(team) for team in config.teams)
        self._client = httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            headers=DEFAULT_HEADERS,
            timeout=config.timeout,
            follow_redirects=True,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Public API
    async def get_matches_by_date(self, day: date) -> List[Match]:
        """Return the watched teams' matches starting on ``day``."""

        # The API expects the literal "+" between date and time, so the query
        # string is built by hand instead of going through ``params``.
        url = f"{MATCH_LIST_ENDPOINT}?matchTime={day.strftime(MATCH_TIME_FORMAT)}"
        payload = await self._request_json("GET", url)
        try:
            items = payload["result"]["matchResponse"]["dtoList"] or []
        except (KeyError, TypeError) as exc:
            raise MatchApiError(f"unexpected match list payload: missing {exc}") from exc

        matches: List[Match] = []
        for item in items:
            if not self._is_watched(item):
                continue
            matches.append(self._to_match(item))
        return matches

    async def aclose(self) -> None:
        """Close the underlying :class:`httpx.AsyncClient`."""

        await self._client.aclose()

    async def __aenter__(self) -> "MatchClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    def _is_watched(self, item: Mapping[str, Any]) -> bool:
        return int(item.get("team1Id", -1)) in self._teams or int(item.get("team2Id", -1)) in self._teams

    @staticmethod
    def _to_match(item: Mapping[str, Any]) -> Match:
        try:
            team1 = item["team1DTO"]
            team2 = item["team2DTO"]
            return Match(
                team1=Team(name=str(team1["name"]), logo=str(team1.get("logoWhite", ""))),
                team2=Team(name=str(team2["name"]), logo=str(team2.get("logoWhite", ""))),
                info=MatchInfo(
                    start_time=int(item["startTime"]) // 1000,
                    bo=str(item.get("bo", "")),
                    name=str(item["csgoEventDTO"]["name"]),
                ),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise MatchApiError(f"malformed match entry: {exc}") from exc

    async def _request_json(self, method: str, url: str) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url)
        except httpx.HTTPError as exc:
            raise MatchApiError(f"request to {url} failed: {exc}") from exc
        self._validate_response(response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise MatchApiError("match API returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise MatchApiError("unexpected payload type from match API")
        return payload

    @staticmethod
    def _validate_response(response: httpx.Response) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise MatchApiError(str(exc)) from exc
