"""Data collection interfaces for cronbell jobs."""

from .match_client import Match, MatchApiError, MatchClient, MatchInfo, Team

__all__ = [
    "Match",
    "MatchApiError",
    "MatchClient",
    "MatchInfo",
    "Team",
]
