"""Runnable units the scheduler can fire."""

from .base import ExecutionError, FunctionUnit, LazyUnit, RunnableUnit, as_unit
from .match_digest import MatchDigestJob

__all__ = ["ExecutionError", "FunctionUnit", "LazyUnit", "MatchDigestJob", "RunnableUnit", "as_unit"]
