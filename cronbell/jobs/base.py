"""The capability the scheduler invokes when a job fires."""
from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable


class ExecutionError(RuntimeError):
    """Raised by a runnable unit when a single execution fails.

    ``cause`` carries the underlying exception, if any, and is also chained as
    ``__cause__`` when raised with ``raise ... from``.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


@runtime_checkable
class RunnableUnit(Protocol):
    """Anything with an asynchronous, argument-less ``execute``."""

    async def execute(self) -> None:
        ...


JobFunction = Callable[[], Union[Awaitable[Any], Any]]


class FunctionUnit:
    """Adapt a plain callable or coroutine function into a :class:`RunnableUnit`.

    Synchronous callables run in a worker thread so they never block the
    polling loop.
    """

    def __init__(self, func: JobFunction) -> None:
        self._func = func

    async def execute(self) -> None:
        if inspect.iscoroutinefunction(self._func):
            await self._func()
            return
        result = await asyncio.to_thread(self._func)
        if inspect.isawaitable(result):
            await result

    def __repr__(self) -> str:
        name = getattr(self._func, "__qualname__", repr(self._func))
        return f"FunctionUnit({name})"


class LazyUnit:
    """Build the wrapped unit on first execution.

    Lets a scheduler be assembled for inspection without opening the
    connections a real unit holds.
    """

    def __init__(self, factory: Callable[[], RunnableUnit]) -> None:
        self._factory = factory
        self._unit: Optional[RunnableUnit] = None

    @property
    def built(self) -> bool:
        return self._unit is not None

    async def execute(self) -> None:
        if self._unit is None:
            self._unit = self._factory()
        await self._unit.execute()

    async def aclose(self) -> None:
        aclose = getattr(self._unit, "aclose", None)
        if aclose is not None:
            await aclose()


def as_unit(target: Union[RunnableUnit, JobFunction]) -> RunnableUnit:
    """Return ``target`` unchanged if it is a unit, else wrap it."""

    if inspect.isclass(target):
        raise TypeError(f"expected a runnable unit instance, got the class {target.__qualname__}")
    if isinstance(target, RunnableUnit):
        return target
    if callable(target):
        return FunctionUnit(target)
    raise TypeError(f"expected a runnable unit or callable, got {target!r}")


__all__ = ["ExecutionError", "FunctionUnit", "JobFunction", "LazyUnit", "RunnableUnit", "as_unit"]
