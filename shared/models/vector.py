"""Pydantic models for vectors stored in and returned from a vector index."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class DistanceMetric(str, Enum):
    """Distance metric of a vector index, fixed when the index is created.

    All engines report distances (lower is closer):
      cosine: 1 - cosine similarity, within [0, 2].
      dot   : 1 - dot product; only bounded for unit-length vectors.
      euclid: squared euclidean distance, within [0, inf).
    """

    COSINE = "cosine"
    DOT = "dot"
    EUCLID = "euclid"

    @classmethod
    def parse(cls, value: "str | DistanceMetric") -> "DistanceMetric":
        """Parse a metric name case-insensitively (accepts "Cosine", "DOT", ...)."""
        if isinstance(value, DistanceMetric):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValueError(f"Unsupported distance metric '{value}'. Expected one of: {allowed}.")

    def get_bounded_range(self) -> tuple[float, float] | None:
        """Return the (min, max) distance range, or None when the metric is unbounded."""
        if self is DistanceMetric.COSINE:
            return (0.0, 2.0)
        return None


class VectorRecord(BaseModel):
    """A vector to upsert into an index.

    Attributes:
        id:        Record id; matches the id of the DocumentChunk it was built from.
        embedding: The vector. Its length must equal the index dimension.
        metadata:  Opaque payload stored next to the vector (chunk content, source, ...).
    """

    id: str
    embedding: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    """One hit of a nearest-neighbour search, ordered by ascending distance.

    Attributes:
        id:       Id of the matching record.
        distance: Distance to the query vector under the index metric.
        metadata: Payload stored with the record.
    """

    id: str
    distance: float
    metadata: dict[str, Any] = Field(default_factory=dict)

    def get_content(self) -> str:
        """Return the chunk text stored in the payload ("" if absent)."""
        return str(self.metadata.get("content") or "")

    def get_source(self) -> str:
        """Return the source label stored in the payload ("unknown" if absent)."""
        return str(self.metadata.get("source") or "unknown")
