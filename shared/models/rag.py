"""Pydantic models for queries, responses and conversations of the RAG pipeline."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from shared.models.vector import SearchResult


class PipelineState(str, Enum):
    """States a single query passes through.

    QUERY_RECEIVED -> QUERY_EMBEDDED -> CANDIDATES_RETRIEVED -> CONTEXT_ASSEMBLED
    -> ANSWER_SYNTHESIZED -> RESPONSE_RETURNED, or the terminal EMPTY_RESPONSE
    when retrieval found nothing or no candidate fits the context budget.
    """

    QUERY_RECEIVED = "QueryReceived"
    QUERY_EMBEDDED = "QueryEmbedded"
    CANDIDATES_RETRIEVED = "CandidatesRetrieved"
    CONTEXT_ASSEMBLED = "ContextAssembled"
    ANSWER_SYNTHESIZED = "AnswerSynthesized"
    RESPONSE_RETURNED = "ResponseReturned"
    EMPTY_RESPONSE = "EmptyResponse"


class ConversationTurn(BaseModel):
    """A single message of a conversation."""

    role: Literal["user", "assistant"]
    content: str


class QueryOptions(BaseModel):
    """Per-query overrides. Unset fields fall back to the configured defaults."""

    top_k: int | None = Field(default=None, ge=1)
    temperature: float | None = Field(default=None, ge=0.0)
    max_tokens: int | None = Field(default=None, ge=1)
    max_context_chars: int | None = Field(default=None, ge=1)
    include_context: bool = True
    filters: dict[str, Any] | None = None


class SourceReference(BaseModel):
    """A retrieved chunk cited by a response.

    Attributes:
        content:         The chunk text.
        source:          Source label of the chunk.
        relevance_score: 1 - distance clamped to [0, 1] for bounded metrics,
                         otherwise the negated raw distance (higher is better).
    """

    content: str
    source: str
    relevance_score: float


class AssembledContext(BaseModel):
    """Output of the context assembler."""

    context: str
    used_results: list[SearchResult] = Field(default_factory=list)


class RAGResponse(BaseModel):
    """Answer of the pipeline.

    Attributes:
        answer:            Generated answer, or a fixed message for empty/failed runs.
        sources:           Chunks the answer was grounded on, in rank order.
        context:           The assembled context, if requested.
        confidence:        Heuristic in [0, 1]; None when the index metric has no mapping.
        state:             Terminal state of the pipeline.
        generation_failed: True if the answer is a degraded placeholder.
    """

    answer: str
    sources: list[SourceReference] = Field(default_factory=list)
    context: str | None = None
    confidence: float | None = Field(default=0.0, ge=0.0, le=1.0)
    state: PipelineState = PipelineState.RESPONSE_RETURNED
    generation_failed: bool = False


class IngestionReport(BaseModel):
    """Summary of a build-index run.

    Attributes:
        total:      Number of chunks handed to the ingestion.
        indexed:    Number of records upserted into the index.
        skipped:    Number of chunks skipped because of an IngestionError.
        failed_ids: Ids of the skipped chunks, in input order.
        errors:     Error message per skipped chunk id.
    """

    total: int = 0
    indexed: int = 0
    skipped: int = 0
    failed_ids: list[str] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)
