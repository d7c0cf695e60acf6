"""Retrieval — similarity search over embedded manual chunks."""

from manual_rag.retrieval.retriever import ChunkRetriever

__all__ = ["ChunkRetriever"]
