"""Pydantic models for chunked source documents.

Hierarchy:
  SourceText    : raw text handed over by the caller, together with its source label.
  ChunkMetadata : provenance of a chunk inside its source.
  DocumentChunk : a bounded, retrievable span of a source document.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SourceText(BaseModel):
    """Raw text of one source document. Reading files is left to the caller.

    Attributes:
        text:     The full document text.
        source:   Human-readable source label (e.g. a title or path).
        metadata: Extra key/value pairs copied onto every chunk of this source.
    """

    text: str
    source: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChunkMetadata(BaseModel):
    """Provenance of a chunk. Unknown keys are kept as extra metadata.

    Attributes:
        source:        Source label shared by all chunks of one document.
        chunk_index:   Zero-based position of this chunk within its source.
        total_chunks:  Number of chunks the source was split into.
        timestamp:     ISO-8601 creation time of the chunk.
        char_start:    Offset of the first character of the chunk in the source text.
        char_end:      Offset one past the last character of the chunk.
        overlap_chars: Leading characters shared with the previous chunk.
    """

    model_config = ConfigDict(extra="allow")

    source: str
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    timestamp: str = Field(default_factory=utc_now_iso)
    char_start: int | None = None
    char_end: int | None = None
    overlap_chars: int = 0

    @model_validator(mode="after")
    def _check_index_bounds(self) -> "ChunkMetadata":
        if self.chunk_index >= self.total_chunks:
            raise ValueError(
                f"chunk_index ({self.chunk_index}) must be smaller than total_chunks ({self.total_chunks})"
            )
        return self


class DocumentChunk(BaseModel):
    """A retrievable span of a source document.

    Attributes:
        id:       Identifier, stable for the same source and chunk position.
        content:  The chunk text.
        metadata: Provenance of the chunk.
    """

    id: str
    content: str
    metadata: ChunkMetadata
