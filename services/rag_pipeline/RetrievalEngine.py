"""Query-time retrieval: embed the query, search the index, return hits as ranked by the index."""

from typing import Any, Callable

from services.rag_pipeline.QueryCache import CacheKey, QueryEmbeddingCache, normalize_query
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.vector import SearchResult


class RetrievalEngine:
    """Embeds queries and fetches nearest chunks. No re-ranking happens here."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        cache: QueryEmbeddingCache | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed = embed_client
        self._rag = rag_client
        self._cache = cache

    def _make_cache_key(self, query: str) -> CacheKey:
        return CacheKey(
            provider=self._embed.get_engine_name(),
            model=self._embed.embed_model,
            normalized_query=normalize_query(query),
            config_fingerprint=self._embed.get_config_fingerprint(),
        )

    async def do_embed_query(self, query: str) -> list[float]:
        """Embed a query, served from the cache when possible.

        Raises:
            EmbeddingError: If the provider fails.
        """
        if self._cache is None:
            return await self._embed.generate_embedding(query)
        key = self._make_cache_key(query)
        cached = self._cache.get(key)
        if cached is not None:
            self.logging.debug("Query embedding cache hit for %r.", key.normalized_query[:80])
            return cached
        vector = await self._embed.generate_embedding(query)
        self._cache.put(key, vector)
        return vector

    async def do_search(self, vector: list[float], top_k: int, filters: dict[str, Any] | None = None) -> list[SearchResult]:
        """Search the index with an already embedded query.

        Raises:
            VectorIndexError: If the index fails.
        """
        results = await self._rag.do_search(vector, top_k=top_k, filters=filters)
        self.logging.debug("Index returned %d of at most %d candidates.", len(results), top_k)
        return results

    async def do_retrieve(
        self,
        query: str,
        top_k: int,
        filters: dict[str, Any] | None = None,
        on_embedded: Callable[[], None] | None = None,
    ) -> list[SearchResult]:
        """Embed the query and return the index results unmodified.

        Args:
            query (str): The (possibly rewritten) user question.
            top_k (int): Maximum number of candidates.
            filters (dict[str, Any] | None): Exact metadata filters passed to the index.
            on_embedded (Callable[[], None] | None): Called once the query vector is ready.

        Returns:
            list[SearchResult]: Candidates ordered by ascending distance.

        Raises:
            EmbeddingError: If the query cannot be embedded.
            VectorIndexError: If the search fails.
        """
        vector = await self.do_embed_query(query)
        if on_embedded is not None:
            on_embedded()
        return await self.do_search(vector, top_k=top_k, filters=filters)
