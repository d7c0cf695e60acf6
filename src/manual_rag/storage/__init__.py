"""
Storage — vector and artifact persistence behind backend-agnostic bases.

Public surface
--------------
- :class:`VectorStoreBase`, :class:`ArtifactStoreBase` — abstract backends.
- :class:`InMemoryVectorStore`, :class:`InMemoryArtifactStore` — in-process backends.
- :class:`ChromaVectorStore` — Chroma backend.
- :class:`EmbeddingRecord`, :class:`Artifact`, :class:`ArtifactState`,
  :class:`MetadataFilter`, :class:`DocumentStatus`, :class:`ChunkMatch` — data models.
"""

from manual_rag.storage.base import ArtifactStoreBase, VectorStoreBase
from manual_rag.storage.memory_store import InMemoryArtifactStore, InMemoryVectorStore
from manual_rag.storage.models import (
    Artifact,
    ArtifactState,
    ChunkMatch,
    DocumentStatus,
    EmbeddingRecord,
    MetadataFilter,
)

__all__ = [
    "Artifact",
    "ArtifactState",
    "ArtifactStoreBase",
    "ChromaVectorStore",
    "ChunkMatch",
    "DocumentStatus",
    "EmbeddingRecord",
    "InMemoryArtifactStore",
    "InMemoryVectorStore",
    "MetadataFilter",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from manual_rag.storage.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
