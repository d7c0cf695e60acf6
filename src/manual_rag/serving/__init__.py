"""
Serving — FastAPI application exposing ingestion and repair triggers.

The endpoints are thin: each one forwards to :mod:`manual_rag.service`
so a scheduler, queue consumer or direct caller can use the same calls.
"""
