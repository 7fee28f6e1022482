"""Unit tests for the query embedding cache and its use in RetrievalEngine."""
import pytest

from services.rag_pipeline.QueryCache import CacheKey, QueryEmbeddingCache, normalize_query
from services.rag_pipeline.RetrievalEngine import RetrievalEngine
from shared.models.vector import VectorRecord


def key(query: str, model: str = "m") -> CacheKey:
    return CacheKey("ollama", model, normalize_query(query), (("dimension", "4"),))


@pytest.mark.unit
class TestQueryEmbeddingCache:
    def test_normalize_query(self):
        assert normalize_query("  how   do\tI  reset ") == "how do I reset"

    def test_keys_compare_by_value(self):
        cache = QueryEmbeddingCache(4)
        cache.put(key("reset  password"), [1.0])
        assert cache.get(key("reset password")) == [1.0]
        assert cache.get(key("reset password", model="other")) is None
        assert (cache.hits, cache.misses) == (1, 1)

    def test_least_recently_used_entry_evicted(self):
        cache = QueryEmbeddingCache(2)
        cache.put(key("a"), [1.0])
        cache.put(key("b"), [2.0])
        cache.get(key("a"))
        cache.put(key("c"), [3.0])
        assert cache.get(key("b")) is None
        assert cache.get(key("a")) == [1.0]
        assert len(cache) == 2

    def test_zero_size_disables_cache(self):
        cache = QueryEmbeddingCache(0)
        cache.put(key("a"), [1.0])
        assert len(cache) == 0
        assert cache.get(key("a")) is None

    def test_returned_vectors_are_copies(self):
        cache = QueryEmbeddingCache(2)
        cache.put(key("a"), [1.0])
        cache.get(key("a")).append(9.0)
        assert cache.get(key("a")) == [1.0]


@pytest.mark.unit
class TestRetrievalEngineCache:
    @pytest.mark.asyncio
    async def test_repeated_query_embedded_once(self, helper_config, embed_client, rag_client):
        engine = RetrievalEngine(helper_config, embed_client, rag_client, cache=QueryEmbeddingCache(8))
        first = await engine.do_embed_query("reset password")
        second = await engine.do_embed_query("  reset   password ")
        assert first == second
        assert len(embed_client.calls) == 1

    @pytest.mark.asyncio
    async def test_without_cache_every_query_is_embedded(self, helper_config, embed_client, rag_client):
        engine = RetrievalEngine(helper_config, embed_client, rag_client)
        await engine.do_embed_query("reset password")
        await engine.do_embed_query("reset password")
        assert len(embed_client.calls) == 2


@pytest.mark.unit
class TestRetrievalEngineRetrieve:
    @pytest.mark.asyncio
    async def test_results_are_passed_through_unchanged(self, helper_config, embed_client, rag_client):
        texts = {"reset": "reset password link", "billing": "billing and invoices", "shipping": "shipping to Europe"}
        await rag_client.do_upsert([
            VectorRecord(id=record_id, embedding=await embed_client.generate_embedding(text), metadata={"content": text, "source": record_id})
            for record_id, text in texts.items()
        ])
        expected = await rag_client.do_search(await embed_client.generate_embedding("reset password"), top_k=2)
        embed_client.calls.clear()

        engine = RetrievalEngine(helper_config, embed_client, rag_client, cache=QueryEmbeddingCache(8))
        embedded: list[int] = []
        results = await engine.do_retrieve("reset password", top_k=2, on_embedded=lambda: embedded.append(len(embed_client.calls)))

        assert results == expected
        assert results[0].id == "reset"
        assert embedded == [1]

        assert await engine.do_retrieve("reset  password", top_k=2) == expected
        assert len(embed_client.calls) == 1

    @pytest.mark.asyncio
    async def test_filters_reach_the_index(self, helper_config, embed_client, rag_client):
        await rag_client.do_upsert([
            VectorRecord(id="a", embedding=await embed_client.generate_embedding("reset"), metadata={"source": "faq"}),
            VectorRecord(id="b", embedding=await embed_client.generate_embedding("reset"), metadata={"source": "blog"}),
        ])
        engine = RetrievalEngine(helper_config, embed_client, rag_client)
        results = await engine.do_retrieve("reset", top_k=5, filters={"source": "blog"})
        assert [result.id for result in results] == ["b"]
