"""
Ingestion — document loading, chunking, and embedding into the vector store.

This module converts raw manuals (PDF, text, Markdown) into ordered,
bounded chunks and drives each chunk through the embedding provider into
the vector store, recording per-chunk success or failure.
"""
