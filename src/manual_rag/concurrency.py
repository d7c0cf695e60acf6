"""Bounded-concurrency fan-out with an overall deadline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[bool]],
    *,
    concurrency: int,
    timeout: float | None = None,
) -> list[bool | None]:
    """Run ``worker(item)`` for every item, at most *concurrency* at a time.

    Returns one outcome per item, in input order: ``True``/``False`` for
    the worker's result, ``None`` for items cancelled because *timeout*
    expired first.  A worker that raises counts as ``False``; the error
    is logged and never reaches sibling items.  A worker that was inside
    :func:`finish_write` when the deadline hit still reports its outcome.
    """
    if not items:
        return []

    semaphore = asyncio.Semaphore(max(concurrency, 1))

    async def _guarded(item: T) -> bool:
        async with semaphore:
            return await worker(item)

    tasks = [asyncio.create_task(_guarded(item)) for item in items]
    _, not_done = await asyncio.wait(tasks, timeout=timeout)
    if not_done:
        logger.warning("Deadline of %ss reached; cancelling %d unfinished item(s)", timeout, len(not_done))
        for task in not_done:
            task.cancel()
        await asyncio.gather(*not_done, return_exceptions=True)

    outcomes: list[bool | None] = []
    for task in tasks:
        if task.cancelled():
            outcomes.append(None)
        elif task.exception() is not None:
            logger.error("Worker failed unexpectedly", exc_info=task.exception())
            outcomes.append(False)
        else:
            outcomes.append(task.result())
    return outcomes


async def finish_write(fn: Callable[..., R], *args: Any) -> R:
    """Run the blocking write ``fn(*args)`` in a worker thread to completion.

    Cancelling the caller does not interrupt a write that has started:
    the cancellation is absorbed once the write returns, so the caller
    can still report what was persisted.
    """
    write = asyncio.ensure_future(asyncio.to_thread(fn, *args))
    try:
        return await asyncio.shield(write)
    except asyncio.CancelledError:
        task = asyncio.current_task()
        if task is not None:
            task.uncancel()
        return await write
