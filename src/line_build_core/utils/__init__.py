"""Shared async helpers."""

from line_build_core.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    WorkerPool,
    run_with_timeout,
)

__all__ = ["BoundedSemaphore", "CancellationToken", "WorkerPool", "run_with_timeout"]
