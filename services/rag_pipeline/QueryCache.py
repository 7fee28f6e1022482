"""Bounded LRU cache for query embeddings.

Entries are keyed by a CacheKey compared by value, so two queries only share
an embedding when provider, model, normalized text and every embedding
setting are identical.
"""

from collections import OrderedDict
from typing import NamedTuple


def normalize_query(query: str) -> str:
    """Collapse runs of whitespace and trim the query."""
    return " ".join(query.split())


class CacheKey(NamedTuple):
    provider: str
    model: str
    normalized_query: str
    config_fingerprint: tuple[tuple[str, str], ...]


class QueryEmbeddingCache:
    """LRU cache of query vectors. A max_entries of 0 disables caching."""

    def __init__(self, max_entries: int = 256) -> None:
        self.max_entries = max(0, int(max_entries))
        self._entries: OrderedDict[CacheKey, list[float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CacheKey) -> list[float] | None:
        vector = self._entries.get(key)
        if vector is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return list(vector)

    def put(self, key: CacheKey, vector: list[float]) -> None:
        if self.max_entries == 0:
            return
        self._entries[key] = list(vector)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()
