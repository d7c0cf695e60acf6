"""Manual RAG — chunking, embedding ingestion and repair queues for product manuals."""

__version__ = "0.1.0"
