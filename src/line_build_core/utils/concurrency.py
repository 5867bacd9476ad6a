"""Bounded async fan-out for reasoning calls.

Semantic evaluation issues one reasoning call per (work unit, rule) pair. The
pool keeps at most ``max_concurrency`` of them in flight, returns results in
submission order, and abandons queued work once a :class:`CancellationToken`
trips or any call fails.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import TYPE_CHECKING, Generic, TypeVar, cast

if TYPE_CHECKING:
    from collections.abc import Awaitable, Iterable
    from types import TracebackType

T = TypeVar("T")

_CANCELLED = "evaluation cancelled"


class CancellationToken:
    """Flag shared between a caller and the pool; tripping it stops queued work."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason = _CANCELLED

    def cancel(self, reason: str = _CANCELLED) -> None:
        self.reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled:
            raise asyncio.CancelledError(self.reason)


class BoundedSemaphore:
    """Async context manager over ``asyncio.Semaphore`` that tracks occupancy."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self.limit = limit
        self.in_use = 0
        self.peak = 0
        self._inner = asyncio.Semaphore(limit)

    async def __aenter__(self) -> None:
        await self._inner.acquire()
        self.in_use += 1
        self.peak = max(self.peak, self.in_use)

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.in_use -= 1
        self._inner.release()


class _Skipped:
    """Returned by a worker that reached the semaphore after the token tripped."""


_SKIPPED = _Skipped()


class WorkerPool(Generic[T]):
    def __init__(self, max_concurrency: int, cancel_token: CancellationToken | None = None) -> None:
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self.max_concurrency = max_concurrency
        self.cancel_token = cancel_token if cancel_token is not None else CancellationToken()
        self.semaphore = BoundedSemaphore(max_concurrency)

    async def gather(self, work: Iterable[Awaitable[T]]) -> list[T]:
        """Await everything in ``work``; results come back in submission order.

        The first failure cancels the remaining workers and is re-raised as-is.
        Calls already running when the token trips are allowed to finish; queued
        calls are dropped and ``CancelledError`` is raised once the running ones
        have settled.
        """

        items = list(work)
        if self.cancel_token.is_cancelled:
            for item in items:
                _discard(item)
            raise asyncio.CancelledError(self.cancel_token.reason)

        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(self._worker(item)) for item in items]
        except BaseExceptionGroup as grouped:
            raise _first_failure(grouped) from None
        results = [task.result() for task in tasks]
        if any(isinstance(result, _Skipped) for result in results):
            raise asyncio.CancelledError(self.cancel_token.reason)
        return cast("list[T]", results)

    async def _worker(self, item: Awaitable[T]) -> T | _Skipped:
        try:
            async with self.semaphore:
                if self.cancel_token.is_cancelled:
                    return _SKIPPED
                return await item
        finally:
            _discard(item)


def _first_failure(grouped: BaseExceptionGroup[BaseException]) -> BaseException:
    error = grouped.exceptions[0]
    if isinstance(error, BaseExceptionGroup):
        return _first_failure(error)
    return error


async def run_with_timeout(
    work: Awaitable[T],
    timeout_seconds: float,
    cancel_token: CancellationToken | None = None,
) -> T:
    """Await ``work`` for at most ``timeout_seconds``.

    Raises ``TimeoutError`` when the deadline passes and ``CancelledError`` when
    ``cancel_token`` trips first.
    """

    if timeout_seconds <= 0:
        _discard(work)
        raise ValueError("timeout_seconds must be > 0")
    if cancel_token is not None and cancel_token.is_cancelled:
        _discard(work)
        raise asyncio.CancelledError(cancel_token.reason)

    current = asyncio.current_task()
    watcher: asyncio.Task[None] | None = None
    if cancel_token is not None and current is not None:
        watcher = asyncio.create_task(_cancel_when_tripped(cancel_token, current))

    try:
        async with asyncio.timeout(timeout_seconds):
            return await work
    except TimeoutError:
        raise TimeoutError(
            f"reasoning call timed out after {timeout_seconds} seconds"
        ) from None
    except asyncio.CancelledError:
        if current is not None and watcher is not None and watcher.done() and not watcher.cancelled():
            current.uncancel()
            raise asyncio.CancelledError(
                cancel_token.reason if cancel_token is not None else _CANCELLED
            ) from None
        raise
    finally:
        if watcher is not None:
            watcher.cancel()
        _discard(work)


async def _cancel_when_tripped(token: CancellationToken, task: asyncio.Task[object]) -> None:
    await token.wait()
    task.cancel()


def _discard(item: Awaitable[object]) -> None:
    # Closing an unstarted coroutine avoids "coroutine was never awaited" at GC time;
    # finished coroutines ignore close().
    if inspect.iscoroutine(item):
        item.close()


__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "WorkerPool",
    "run_with_timeout",
]
