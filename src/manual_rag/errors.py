"""Error taxonomy shared by ingestion, backfill and artifact repair.

Only :class:`ValidationError` is allowed to escape a top-level call.
Provider and store failures are converted into the persisted state of
the record being processed.
"""

from __future__ import annotations


class ManualRagError(Exception):
    """Base class for all errors raised by this package."""


class ProviderError(ManualRagError):
    """An embedding or artifact generation call failed or timed out."""


class StoreError(ManualRagError):
    """A vector-store or artifact-store operation failed."""


class ValidationError(ManualRagError, ValueError):
    """Malformed top-level input (empty document, bad chunk size, …)."""


class ArtifactNotFoundError(ValidationError):
    """A targeted repair named an owner with no artifact and no override."""

    def __init__(self, owner_id: str) -> None:
        super().__init__(f"No artifact found for owner {owner_id!r}")
        self.owner_id = owner_id
