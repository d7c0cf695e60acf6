"""Per-resource-kind soft lock preventing overlapping repair sweeps.

The guard is best-effort: it stops a second sweep of the same kind from
starting in this process while one is running.  Overlap across processes
only costs duplicate provider calls, since every write is a
single-record upsert.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

EMBEDDINGS = "embeddings"
ARTIFACTS = "artifacts"


class SweepGuard:
    """Non-blocking mutual exclusion keyed by resource kind."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, kind: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks.setdefault(kind, threading.Lock())

    def is_running(self, kind: str) -> bool:
        return self._lock_for(kind).locked()

    @contextmanager
    def hold(self, kind: str) -> Iterator[bool]:
        """Try to claim *kind*; yields ``False`` if a sweep already holds it."""
        lock = self._lock_for(kind)
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()


# Process-wide guard shared by every scheduler and repair queue.
sweep_guard = SweepGuard()
