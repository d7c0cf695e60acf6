"""Backfill — periodic repair of chunks whose embedding failed."""

from manual_rag.backfill.guard import ARTIFACTS, EMBEDDINGS, SweepGuard, sweep_guard
from manual_rag.backfill.scheduler import BackfillReport, BackfillScheduler, clamp_batch_size

__all__ = [
    "ARTIFACTS",
    "EMBEDDINGS",
    "BackfillReport",
    "BackfillScheduler",
    "SweepGuard",
    "clamp_batch_size",
    "sweep_guard",
]
