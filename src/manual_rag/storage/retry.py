"""Retry policy for store reads.

Reads are idempotent, so a transient :class:`StoreError` is retried a few
times with exponential backoff.  Writes are never retried here.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from manual_rag.errors import StoreError

R = TypeVar("R")

READ_ATTEMPTS = 3

store_read_retry = retry(
    retry=retry_if_exception_type(StoreError),
    stop=stop_after_attempt(READ_ATTEMPTS),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
    reraise=True,
)


def read_with_retry(fn: Callable[..., R], *args, **kwargs) -> R:
    """Call the store read *fn*, retrying on :class:`StoreError`."""
    return store_read_retry(fn)(*args, **kwargs)
