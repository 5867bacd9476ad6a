"""Tests for the bounded worker pool and timeout helpers."""

from __future__ import annotations

import asyncio
import gc
import sys
import warnings
from contextlib import contextmanager
from types import SimpleNamespace
from typing import TYPE_CHECKING

import pytest

from line_build_core.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    WorkerPool,
    run_with_timeout,
)

if TYPE_CHECKING:
    from collections.abc import Iterator


@contextmanager
def _capture_unraisable() -> Iterator[list[SimpleNamespace]]:
    captured: list[SimpleNamespace] = []
    original = sys.unraisablehook

    def hook(unraisable: object) -> None:
        captured.append(
            SimpleNamespace(
                exc_type=getattr(unraisable, "exc_type", None),
                err_msg=getattr(unraisable, "err_msg", None),
            )
        )

    sys.unraisablehook = hook
    try:
        yield captured
    finally:
        sys.unraisablehook = original


async def _value_after(value: int, delay: float) -> int:
    await asyncio.sleep(delay)
    return value


async def test_gather_returns_results_in_submission_order() -> None:
    pool: WorkerPool[int] = WorkerPool(max_concurrency=2)
    delays = [0.03, 0.0, 0.02, 0.01, 0.0]

    results = await pool.gather(_value_after(index, delay) for index, delay in enumerate(delays))

    assert results == [0, 1, 2, 3, 4]
    assert pool.semaphore.peak == 2
    assert pool.semaphore.in_use == 0


async def test_first_failure_cancels_remaining_work() -> None:
    cancelled: list[str] = []

    async def _slow() -> int:
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.append("slow")
            raise
        return 0

    async def _broken() -> int:
        await asyncio.sleep(0)
        raise ValueError("rule exploded")

    pool: WorkerPool[int] = WorkerPool(max_concurrency=3)

    with pytest.raises(ValueError, match="rule exploded"):
        await pool.gather([_slow(), _broken(), _value_after(1, 0.0)])

    assert cancelled == ["slow"]


async def test_cancelled_token_skips_unscheduled_work() -> None:
    token = CancellationToken()
    token.cancel()
    pool: WorkerPool[int] = WorkerPool(max_concurrency=1, cancel_token=token)

    with _capture_unraisable() as leaked, warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        with pytest.raises(asyncio.CancelledError):
            await pool.gather([_value_after(1, 0.0), _value_after(2, 0.0)])
        gc.collect()

    assert leaked == []
    assert token.is_cancelled


async def test_tripping_token_lets_running_calls_finish_and_drops_queued() -> None:
    token = CancellationToken()
    started: list[str] = []
    finished: list[str] = []

    async def _job(name: str, delay: float) -> int:
        started.append(name)
        await asyncio.sleep(delay)
        finished.append(name)
        return len(name)

    async def _trip_soon() -> None:
        await asyncio.sleep(0.01)
        token.cancel("operator stop")

    pool: WorkerPool[int] = WorkerPool(max_concurrency=2, cancel_token=token)
    tripper = asyncio.create_task(_trip_soon())

    with pytest.raises(asyncio.CancelledError, match="operator stop"):
        await pool.gather([_job("slow", 0.2), _job("fast", 0.05), _job("queued", 0.0)])
    await tripper

    assert sorted(finished) == ["fast", "slow"]
    assert "queued" not in started
    assert pool.semaphore.in_use == 0


async def test_token_tripped_after_all_calls_started_returns_results() -> None:
    token = CancellationToken()

    async def _trip_then_return() -> int:
        token.cancel()
        await asyncio.sleep(0)
        return 1

    pool: WorkerPool[int] = WorkerPool(max_concurrency=2, cancel_token=token)

    assert await pool.gather([_value_after(2, 0.01), _trip_then_return()]) == [2, 1]


def test_pool_and_semaphore_reject_non_positive_limits() -> None:
    with pytest.raises(ValueError, match="max_concurrency must be > 0"):
        WorkerPool(max_concurrency=0)
    with pytest.raises(ValueError, match="limit must be > 0"):
        BoundedSemaphore(0)


async def test_run_with_timeout_returns_value() -> None:
    assert await run_with_timeout(_value_after(7, 0.0), 1.0) == 7


async def test_run_with_timeout_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError, match="timeout_seconds must be > 0"):
        await run_with_timeout(_value_after(1, 0.0), 0)


async def test_run_with_timeout_does_not_leak_coroutine_on_early_cancel() -> None:
    token = CancellationToken()
    token.cancel()

    with _capture_unraisable() as leaked, warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        coro = _value_after(1, 0.01)
        with pytest.raises(asyncio.CancelledError):
            await run_with_timeout(coro, 1.0, token)
        del coro
        gc.collect()

    assert leaked == []


async def test_run_with_timeout_timeout_path_does_not_leak_coroutine() -> None:
    with _capture_unraisable() as leaked, warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        with pytest.raises(TimeoutError, match="timed out after 0.001 seconds"):
            await run_with_timeout(_value_after(1, 0.05), 0.001, None)
        gc.collect()

    assert leaked == []


async def test_run_with_timeout_stops_when_token_trips() -> None:
    token = CancellationToken()

    async def _trip() -> None:
        await asyncio.sleep(0.01)
        token.cancel()

    tripper = asyncio.create_task(_trip())
    with pytest.raises(asyncio.CancelledError):
        await run_with_timeout(_value_after(1, 5.0), 10.0, token)
    await tripper
