"""Overlap policies deciding whether a due job may be dispatched again."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:  # pragma: no cover
    from cronbell.services.slot import JobSlot


class OverlapPolicy(Protocol):
    """A policy inspects a due :class:`JobSlot` and allows or vetoes dispatch."""

    name: str

    def allows(self, slot: "JobSlot") -> bool:
        ...


@dataclass(slots=True, frozen=True)
class AllowOverlap:
    """Always dispatch, even if earlier executions are still running."""

    name: str = "allow"

    def allows(self, slot: "JobSlot") -> bool:
        return True


@dataclass(slots=True, frozen=True)
class SkipIfRunning:
    """Drop the firing while a previous execution of the slot is in flight."""

    name: str = "skip"

    def allows(self, slot: "JobSlot") -> bool:
        return slot.in_flight == 0


_POLICIES = {
    "allow": AllowOverlap,
    "skip": SkipIfRunning,
}


def policy_from_name(name: str) -> OverlapPolicy:
    """Return the policy registered under ``name``."""

    try:
        factory = _POLICIES[name.lower()]
    except KeyError:
        raise ValueError(f"unknown overlap policy: {name}") from None
    return factory()
