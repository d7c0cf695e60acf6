"""Backfill scheduler — re-embed chunks whose embedding is still missing.

Intended to be invoked periodically (a scheduler tick or an on-demand
endpoint).  Each call is one bounded sweep: select the pending records
that have waited longest, retry each once, and report counts.  Records
that fail again stay pending for the next sweep; there is no attempt
cap at this layer.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel

from manual_rag.backfill.guard import EMBEDDINGS, SweepGuard, sweep_guard
from manual_rag.concurrency import run_bounded
from manual_rag.config import settings
from manual_rag.errors import StoreError, ValidationError
from manual_rag.ingestion.embedder import EmbeddingProvider
from manual_rag.ingestion.orchestrator import attempt_embedding
from manual_rag.storage.base import VectorStoreBase
from manual_rag.storage.retry import read_with_retry

logger = logging.getLogger(__name__)


class BackfillReport(BaseModel):
    """Counts for one or more backfill sweeps.

    ``skipped`` is set when another sweep of the same kind was already
    running and this one did nothing.
    """

    processed_count: int = 0
    succeeded_count: int = 0
    skipped: bool = False


def clamp_batch_size(batch_size: int, max_batch_size: int) -> int:
    """Clamp *batch_size* into ``[1, max_batch_size]``."""
    if max_batch_size < 1:
        raise ValidationError(f"max_batch_size must be >= 1, got {max_batch_size}")
    return min(max(batch_size, 1), max_batch_size)


class BackfillScheduler:
    """Retry embeddings for records left with ``vector=None``.

    Parameters
    ----------
    store:
        Vector store scanned for pending records.
    embedder:
        Embedding provider used for the retries.
    guard:
        Soft lock preventing overlapping sweeps.
    concurrency:
        Maximum number of embedding calls in flight per sweep.
    embed_timeout:
        Per-call embedding timeout in seconds.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: EmbeddingProvider,
        *,
        guard: SweepGuard = sweep_guard,
        concurrency: int = settings.backfill_concurrency,
        embed_timeout: float | None = settings.embedding_timeout_seconds,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.guard = guard
        self.concurrency = concurrency
        self.embed_timeout = embed_timeout

    async def process_pending(
        self,
        batch_size: int = settings.backfill_batch_size,
        max_batch_size: int = settings.backfill_max_batch_size,
        *,
        timeout: float | None = None,
    ) -> BackfillReport:
        """Run one sweep over at most *batch_size* pending records.

        Out-of-range batch sizes are clamped, not rejected.  With a
        *timeout*, records not finished in time are cancelled and stay
        pending; they do not count as processed.
        """
        size = clamp_batch_size(batch_size, max_batch_size)

        with self.guard.hold(EMBEDDINGS) as acquired:
            if not acquired:
                logger.info("Embedding backfill already running; skipping this sweep")
                return BackfillReport(skipped=True)

            try:
                records = await asyncio.to_thread(read_with_retry, self.store.query_null, size)
            except StoreError as exc:
                logger.error("Error fetching chunks with null embeddings: %s", exc)
                return BackfillReport()

            if not records:
                logger.info("No chunks with null embeddings found")
                return BackfillReport()

            logger.info("Processing %d chunks with null embeddings", len(records))
            outcomes = await run_bounded(
                records,
                lambda rec: attempt_embedding(rec, self.embedder, self.store, timeout=self.embed_timeout),
                concurrency=self.concurrency,
                timeout=timeout,
            )

        report = BackfillReport(
            processed_count=sum(o is not None for o in outcomes),
            succeeded_count=sum(o is True for o in outcomes),
        )
        logger.info("Backfill sweep done: %d processed, %d succeeded",
                    report.processed_count, report.succeeded_count)
        return report

    async def drain(
        self,
        batch_size: int = settings.backfill_batch_size,
        max_batch_size: int = settings.backfill_max_batch_size,
        *,
        max_batches: int = 50,
    ) -> BackfillReport:
        """Run sweeps until nothing is pending, nothing succeeds, or *max_batches* ran."""
        total = BackfillReport()
        for _ in range(max_batches):
            report = await self.process_pending(batch_size, max_batch_size)
            if report.skipped:
                total.skipped = True
                break
            total.processed_count += report.processed_count
            total.succeeded_count += report.succeeded_count
            if report.processed_count == 0 or report.succeeded_count == 0:
                break
        else:
            logger.warning("Backfill drain stopped after %d batches", max_batches)
        return total
