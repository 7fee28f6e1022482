"""Sentence-aware chunking of source text.

Sentences end at . ! ? 。 ！ ？ followed by whitespace; the whitespace stays
with the sentence before it, so sentence spans cover the text without gaps.
Sentences are packed greedily into chunks of at most chunk_size characters.
Each new chunk starts with the last overlap_size characters of the previous
chunk, moved forward to the next word start. If that seed plus the next
sentence would not fit, the seed is dropped for that boundary.

A single sentence longer than chunk_size becomes its own oversized chunk; it
is never split mid-sentence.
"""

import logging
import re
from typing import Any

from shared.models.chunk import ChunkMetadata, DocumentChunk, utc_now_iso

_SENTENCE_END = re.compile(r"[.!?。！？]\s+")


def make_chunk_id(source: str, chunk_index: int) -> str:
    """Build the chunk id, stable for the same source and position.

    Args:
        source (str): Source label of the document.
        chunk_index (int): Zero-based chunk index.

    Returns:
        str: "{source}::{chunk_index}"
    """
    return f"{source}::{chunk_index}"


def split_sentence_spans(text: str) -> list[tuple[int, int]]:
    """Split text into contiguous (start, end) sentence spans covering the whole text."""
    spans: list[tuple[int, int]] = []
    start = 0
    for match in _SENTENCE_END.finditer(text):
        spans.append((start, match.end()))
        start = match.end()
    if start < len(text):
        spans.append((start, len(text)))
    return spans


def _overlap_start(text: str, chunk_start: int, chunk_end: int, overlap_size: int) -> int:
    """Return where the overlap seed of a closed chunk begins (chunk_end means no seed)."""
    if overlap_size <= 0:
        return chunk_end
    pos = max(chunk_start, chunk_end - overlap_size)
    while pos < chunk_end:
        if pos == chunk_start or (text[pos - 1].isspace() and not text[pos].isspace()):
            return pos
        pos += 1
    return chunk_end


def split_text_spans(text: str, chunk_size: int, overlap_size: int) -> list[tuple[int, int, int]]:
    """Compute chunk boundaries for a text.

    Args:
        text (str): The source text.
        chunk_size (int): Maximum chunk length in characters (> 0).
        overlap_size (int): Characters carried over from the previous chunk (0 <= overlap_size < chunk_size).

    Returns:
        list[tuple[int, int, int]]: (start, end, overlap) per chunk, where text[start:end] is the
            chunk and its first `overlap` characters repeat the end of the previous chunk.

    Raises:
        ValueError: If chunk_size or overlap_size are out of range.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}.")
    if overlap_size < 0:
        raise ValueError(f"overlap_size must not be negative, got {overlap_size}.")
    if overlap_size >= chunk_size:
        raise ValueError(f"overlap_size ({overlap_size}) must be smaller than chunk_size ({chunk_size}).")
    if not text or not text.strip():
        return []

    bounds: list[tuple[int, int, int]] = []
    cur_start: int | None = None
    cur_end = 0
    cur_overlap = 0
    for span_start, span_end in split_sentence_spans(text):
        if cur_start is None:
            cur_start, cur_end, cur_overlap = span_start, span_end, 0
            continue
        if span_end - cur_start <= chunk_size:
            cur_end = span_end
            continue

        # next sentence does not fit: close the chunk and seed the next one
        bounds.append((cur_start, cur_end, cur_overlap))
        seed = _overlap_start(text, cur_start, cur_end, overlap_size)
        if seed < cur_end and span_end - seed <= chunk_size:
            cur_start, cur_end, cur_overlap = seed, span_end, cur_end - seed
        else:
            cur_start, cur_end, cur_overlap = span_start, span_end, 0

    if cur_start is not None:
        bounds.append((cur_start, cur_end, cur_overlap))
    return bounds


class DocumentChunker:
    """Turns raw source text into DocumentChunks with provenance metadata."""

    def __init__(self, logger: logging.Logger) -> None:
        self.logging = logger

    def chunk(
        self,
        text: str,
        chunk_size: int,
        overlap_size: int,
        source: str,
        extra_metadata: dict[str, Any] | None = None,
    ) -> list[DocumentChunk]:
        """Split a source text into overlapping, bounded chunks.

        Args:
            text (str): The full source text.
            chunk_size (int): Maximum chunk length in characters.
            overlap_size (int): Overlap between consecutive chunks, smaller than chunk_size.
            source (str): Source label stored on every chunk and used for the chunk ids.
            extra_metadata (dict[str, Any] | None): Extra key/value pairs copied onto every chunk.

        Returns:
            list[DocumentChunk]: Chunks in source order; empty for empty or whitespace-only text.

        Raises:
            ValueError: If chunk_size or overlap_size are out of range.
        """
        bounds = split_text_spans(text, chunk_size, overlap_size)
        total = len(bounds)
        timestamp = utc_now_iso()
        chunks: list[DocumentChunk] = []
        for index, (start, end, overlap) in enumerate(bounds):
            metadata = ChunkMetadata(**{
                **(extra_metadata or {}),
                "source": source,
                "chunk_index": index,
                "total_chunks": total,
                "timestamp": timestamp,
                "char_start": start,
                "char_end": end,
                "overlap_chars": overlap,
            })
            chunks.append(DocumentChunk(id=make_chunk_id(source, index), content=text[start:end], metadata=metadata))

        oversized = sum(1 for c in chunks if len(c.content) > chunk_size)
        self.logging.debug(
            "Chunked source '%s' into %d chunks (%d oversized single sentences).", source, total, oversized,
        )
        return chunks
