"""Hierarchical text chunking.

Text is packed greedily into chunks of at most ``max_chunk_size`` UTF-8
bytes, paragraph by paragraph.  A paragraph that cannot fit on its own
is broken into sentences, and a sentence that cannot fit on its own is
broken into words.  Words are never split: a single word longer than
the limit is emitted as a chunk by itself.

The chunker is pure and deterministic, so re-chunking a document always
yields the same boundaries (and therefore the same chunk ids).
"""

from __future__ import annotations

import re
from collections.abc import Iterator

from manual_rag.errors import ValidationError
from manual_rag.ingestion.models import Chunk, Document

PARAGRAPH_DELIMITER = "\n\n"
UNIT_DELIMITER = " "

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def byte_length(text: str) -> int:
    """Return the UTF-8 encoded length of *text*."""
    return len(text.encode("utf-8"))


class _ChunkAccumulator:
    """Greedy fill/flush buffer shared by all split levels."""

    def __init__(self, max_chunk_size: int) -> None:
        self.max_chunk_size = max_chunk_size
        self.chunks: list[str] = []
        self._current = ""

    def add(self, unit: str, delimiter: str) -> None:
        if not self._current:
            self._current = unit
            return
        candidate = f"{self._current}{delimiter}{unit}"
        if byte_length(candidate) <= self.max_chunk_size:
            self._current = candidate
        else:
            self.flush()
            self._current = unit

    def flush(self) -> None:
        text = self._current.strip()
        if text:
            self.chunks.append(text)
        self._current = ""


def _units(paragraph: str, max_chunk_size: int) -> Iterator[str]:
    """Yield the smallest units of *paragraph* needed to respect the limit."""
    if byte_length(paragraph) <= max_chunk_size:
        yield paragraph
        return
    for sentence in _SENTENCE_SPLIT.split(paragraph):
        sentence = sentence.strip()
        if not sentence:
            continue
        if byte_length(sentence) <= max_chunk_size:
            yield sentence
        else:
            yield from sentence.split()


def chunk_text(text: str, max_chunk_size: int) -> list[str]:
    """Split *text* into ordered chunks of at most *max_chunk_size* bytes.

    Parameters
    ----------
    text:
        Raw document text.  Paragraphs are separated by blank lines.
    max_chunk_size:
        Maximum UTF-8 byte length of a chunk.  Must be positive.

    Returns
    -------
    list[str]
        Trimmed, non-empty chunks in document order.  Empty or
        whitespace-only text yields an empty list.
    """
    if max_chunk_size <= 0:
        raise ValidationError(f"max_chunk_size must be > 0, got {max_chunk_size}")

    acc = _ChunkAccumulator(max_chunk_size)
    for paragraph in _PARAGRAPH_SPLIT.split(text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        # The first unit of a paragraph keeps the paragraph break; the
        # rest of a split paragraph is re-joined with single spaces.
        delimiter = PARAGRAPH_DELIMITER
        for unit in _units(paragraph, max_chunk_size):
            acc.add(unit, delimiter)
            delimiter = UNIT_DELIMITER
    acc.flush()
    return acc.chunks


def chunk_document(document: Document, max_chunk_size: int) -> list[Chunk]:
    """Chunk *document* and wrap each piece in a :class:`Chunk`."""
    return [
        Chunk(
            document_id=document.id,
            sequence_index=idx,
            text=text,
            byte_length=byte_length(text),
        )
        for idx, text in enumerate(chunk_text(document.text, max_chunk_size))
    ]
