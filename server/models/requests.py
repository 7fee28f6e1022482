from pydantic import BaseModel, Field, model_validator

from shared.models.chunk import DocumentChunk, SourceText
from shared.models.rag import QueryOptions


class QueryRequest(BaseModel):
    question: str = Field(min_length=1)
    options: QueryOptions | None = None


class ChatRequest(QueryRequest):
    pass


class IngestRequest(BaseModel):
    """Either raw sources to chunk, or ready-made chunks. Not both."""

    sources: list[SourceText] = Field(default_factory=list)
    chunks: list[DocumentChunk] = Field(default_factory=list)
    chunk_size: int | None = None
    overlap_size: int | None = None
    replace_existing: bool = False

    @model_validator(mode="after")
    def _check_payload(self) -> "IngestRequest":
        if bool(self.sources) == bool(self.chunks):
            raise ValueError("Provide either 'sources' or 'chunks'.")
        return self
