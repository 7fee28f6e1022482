"""Typed errors raised across the RAG pipeline.

Hierarchy:
  RAGError                : base class, carries the underlying cause.
  QueryValidationError    : the question itself is unusable (also a ValueError).
  IngestionError          : a single chunk could not be ingested (skipped, batch continues).
  EmbeddingError          : the embedding provider failed (auth, quota, timeout, bad response).
  VectorIndexError        : upsert/search against the vector index failed.
  DimensionMismatchError  : a vector does not match the index dimension (never retried).
  RetrievalError          : the query timed out or was cancelled before candidates were retrieved.
  GenerationError         : the generation model failed or timed out.
  ClientRequestError      : a backend answered with a non-2xx HTTP status.
"""


class RAGError(Exception):
    """Base class for all pipeline errors.

    Attributes:
        cause: The exception that triggered this error, if any.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class QueryValidationError(RAGError, ValueError):
    """The question was rejected before the pipeline started, e.g. because it is blank."""


class IngestionError(RAGError):
    """A malformed or empty chunk was rejected during ingestion."""

    def __init__(self, message: str, chunk_id: str, cause: BaseException | None = None) -> None:
        super().__init__(message, cause=cause)
        self.chunk_id = chunk_id


class EmbeddingError(RAGError):
    """The embedding provider failed to return valid vectors."""


class VectorIndexError(RAGError):
    """Upsert or search against the vector index failed.

    Named VectorIndexError so it does not shadow the builtin IndexError.
    """


class DimensionMismatchError(VectorIndexError):
    """A vector's length differs from the dimension declared by the index."""

    def __init__(self, expected: int, actual: int, record_id: str | None = None) -> None:
        where = f" for record '{record_id}'" if record_id is not None else ""
        super().__init__(f"Dimension mismatch{where}: index expects {expected}, got {actual}.")
        self.expected = expected
        self.actual = actual
        self.record_id = record_id


class RetrievalError(RAGError):
    """The query could not retrieve candidates within its time budget."""


class GenerationError(RAGError):
    """The generation model failed to produce an answer."""


class ClientRequestError(Exception):
    """A backend request returned a non-2xx HTTP status.

    Attributes:
        status_code: The HTTP status code of the response.
        url: The requested URL.
    """

    def __init__(self, status_code: int, url: str, body: str = "") -> None:
        super().__init__(f"Request to {url} failed with status {status_code}")
        self.status_code = status_code
        self.url = url
        self.body = body

    @property
    def is_transient(self) -> bool:
        """True for statuses worth retrying (429 and 5xx)."""
        return self.status_code == 429 or self.status_code >= 500
