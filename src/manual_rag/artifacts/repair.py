"""Artifact repair queue — fill in artifacts created as placeholders.

The owning write creates an artifact eagerly in ``PLACEHOLDER`` state;
this queue regenerates it later, either for one known owner
(:meth:`ArtifactRepairQueue.repair_artifact`) or for every artifact
still waiting (:meth:`ArtifactRepairQueue.run_sweep`).  Both go through
:meth:`ArtifactRepairQueue._regenerate`.

Creation and repair may race on the same owner.  Artifacts are derived
data, so each regeneration is a single last-write-wins upsert and no
lock is taken.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from manual_rag.artifacts.qr import ArtifactGenerator
from manual_rag.backfill.guard import ARTIFACTS, SweepGuard, sweep_guard
from manual_rag.backfill.scheduler import clamp_batch_size
from manual_rag.concurrency import finish_write, run_bounded
from manual_rag.config import settings
from manual_rag.errors import ArtifactNotFoundError, ProviderError, StoreError
from manual_rag.storage.base import ArtifactStoreBase
from manual_rag.storage.models import Artifact, ArtifactState, utcnow
from manual_rag.storage.retry import read_with_retry

logger = logging.getLogger(__name__)


class RepairSweepReport(BaseModel):
    updated: int = 0
    failed: int = 0
    skipped: bool = False


class ArtifactRepairQueue:
    """Regenerate placeholder and failed artifacts.

    Parameters
    ----------
    store:
        Artifact store scanned and written back.
    generator:
        Produces the payload from an artifact's source.
    guard:
        Soft lock preventing overlapping sweeps.
    max_attempts:
        Inline generation attempts before an artifact is marked ``FAILED``.
    max_sweep:
        Upper bound for the sweep limit.
    concurrency:
        Maximum number of regenerations in flight per sweep.
    """

    def __init__(
        self,
        store: ArtifactStoreBase,
        generator: ArtifactGenerator,
        *,
        guard: SweepGuard = sweep_guard,
        max_attempts: int = settings.artifact_max_attempts,
        max_sweep: int = settings.artifact_max_sweep,
        concurrency: int = settings.backfill_concurrency,
    ) -> None:
        self.store = store
        self.generator = generator
        self.guard = guard
        self.max_attempts = max_attempts
        self.max_sweep = max_sweep
        self.concurrency = concurrency

    async def repair_artifact(self, owner_id: str, payload_override: str | None = None) -> Artifact:
        """Regenerate the artifact of *owner_id* now.

        *payload_override* replaces the content to encode (e.g. a custom
        URL); with an override, a missing artifact is created.  Without
        one, an unknown owner raises :class:`ArtifactNotFoundError`.

        If the write-back fails, the returned artifact is ``FAILED`` and
        the stored one is left untouched for the next sweep.  Only a read
        that still fails after retries raises :class:`StoreError`.
        """
        artifact = await asyncio.to_thread(read_with_retry, self.store.get, owner_id)
        if artifact is None:
            if payload_override is None:
                raise ArtifactNotFoundError(owner_id)
            artifact = Artifact(owner_id=owner_id, source=payload_override)
        elif payload_override is not None:
            artifact = artifact.model_copy(update={"source": payload_override})
        return await self._regenerate(artifact)

    async def run_sweep(
        self,
        limit: int = settings.artifact_max_sweep,
        *,
        timeout: float | None = None,
    ) -> RepairSweepReport:
        """Regenerate up to *limit* artifacts still in ``PLACEHOLDER``/``FAILED``."""
        size = clamp_batch_size(limit, self.max_sweep)

        with self.guard.hold(ARTIFACTS) as acquired:
            if not acquired:
                logger.info("Artifact repair already running; skipping this sweep")
                return RepairSweepReport(skipped=True)

            try:
                artifacts = await asyncio.to_thread(read_with_retry, self.store.query_placeholders, size)
            except StoreError as exc:
                logger.error("Error fetching artifacts awaiting repair: %s", exc)
                return RepairSweepReport()

            if not artifacts:
                logger.info("No artifacts awaiting repair")
                return RepairSweepReport()

            logger.info("Found %d artifacts awaiting repair", len(artifacts))
            outcomes = await run_bounded(
                artifacts,
                self._regenerate_ok,
                concurrency=self.concurrency,
                timeout=timeout,
            )

        report = RepairSweepReport(
            updated=sum(o is True for o in outcomes),
            failed=sum(o is False for o in outcomes),
        )
        logger.info("Artifact sweep done: %d updated, %d failed", report.updated, report.failed)
        return report

    # -- shared regenerate-and-write-back ------------------------------------

    async def _regenerate_ok(self, artifact: Artifact) -> bool:
        repaired = await self._regenerate(artifact)
        return repaired.state is ArtifactState.READY

    async def _regenerate(self, artifact: Artifact) -> Artifact:
        payload: str | None = None
        if not artifact.source:
            logger.warning("Artifact %s has no source to encode", artifact.owner_id)
        else:
            try:
                payload = await asyncio.to_thread(self._generate, artifact.source)
            except ProviderError as exc:
                logger.warning("Regeneration of artifact %s failed after %d attempts: %s",
                               artifact.owner_id, self.max_attempts, exc)

        now = utcnow()
        repaired = artifact.model_copy(
            update={
                "payload": payload if payload is not None else artifact.payload,
                "state": ArtifactState.READY if payload is not None else ArtifactState.FAILED,
                "attempt_count": artifact.attempt_count + 1,
                "last_attempt_at": now,
                "updated_at": now,
            }
        )
        try:
            await finish_write(self.store.upsert, repaired)
        except StoreError as exc:
            logger.error("Could not write artifact %s: %s", artifact.owner_id, exc)
            return repaired.model_copy(update={"state": ArtifactState.FAILED})
        if repaired.state is ArtifactState.READY:
            logger.info("Repaired artifact %s", artifact.owner_id)
        return repaired

    def _generate(self, source: str) -> str:
        retryer = Retrying(
            retry=retry_if_exception_type(ProviderError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.1, max=2),
            reraise=True,
        )
        return retryer(self.generator.generate, source)
