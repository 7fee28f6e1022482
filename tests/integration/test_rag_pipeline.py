"""End-to-end pipeline tests: ingestion, retrieval, context, generation and degraded paths."""
import pytest

from services.rag_pipeline.prompts import GENERATION_FAILED_ANSWER, NO_INFORMATION_ANSWER
from services.rag_pipeline.RAGService import RAGService
from shared.clients.rag.memory.RAGClientMemory import RAGClientMemory
from shared.models.errors import EmbeddingError, GenerationError, QueryValidationError, RAGError, RetrievalError
from shared.models.rag import ConversationTurn, PipelineState, QueryOptions


@pytest.mark.integration
class TestQuery:
    @pytest.mark.asyncio
    async def test_faq_question_grounded_on_reset_chunk(self, rag_service, rag_client, embed_client, llm_client, faq_document):
        await rag_service.do_build_index_from_sources([faq_document], chunk_size=200, overlap_size=40)
        assert await rag_client.do_count() == 3

        query_vector = await embed_client.generate_embedding("how do I reset my password")
        top = (await rag_client.do_search(query_vector, top_k=1))[0]
        assert "reset password" in top.get_content()

        response = await rag_service.do_query("how do I reset my password")

        assert response.state is PipelineState.RESPONSE_RETURNED
        assert len(response.sources) >= 1
        assert "reset password" in response.sources[0].content
        assert response.sources[0].source == faq_document.source
        assert response.answer == llm_client.answer
        assert 0.0 < response.confidence <= 1.0
        assert response.context.startswith("[doc1] (source: FAQ: reset password)")
        assert len(llm_client.calls) == 1

    @pytest.mark.asyncio
    async def test_options_override_defaults(self, rag_service, llm_client, faq_document):
        await rag_service.do_build_index_from_sources([faq_document], chunk_size=200, overlap_size=40)
        response = await rag_service.do_query(
            "reset password",
            options=QueryOptions(top_k=1, include_context=False, filters={"lang": "en"}),
        )
        assert len(response.sources) == 1
        assert response.context is None

    @pytest.mark.asyncio
    async def test_filters_exclude_other_sources(self, rag_service, llm_client, faq_document):
        await rag_service.do_build_index_from_sources([faq_document], chunk_size=200, overlap_size=40)
        response = await rag_service.do_query("reset password", options=QueryOptions(filters={"source": "another.md"}))
        assert response.state is PipelineState.EMPTY_RESPONSE
        assert llm_client.calls == []

    @pytest.mark.asyncio
    async def test_context_budget_too_small_gives_empty_response(self, rag_service, llm_client, faq_document):
        await rag_service.do_build_index_from_sources([faq_document], chunk_size=200, overlap_size=40)
        response = await rag_service.do_query("reset password", options=QueryOptions(max_context_chars=10))
        assert response.state is PipelineState.EMPTY_RESPONSE
        assert response.answer == NO_INFORMATION_ANSWER
        assert response.sources == []
        assert response.context == ""
        assert response.confidence == 0.0
        assert llm_client.calls == []

    @pytest.mark.asyncio
    async def test_sources_follow_rank_order(self, rag_service, faq_document):
        await rag_service.do_build_index_from_sources([faq_document], chunk_size=200, overlap_size=40)
        response = await rag_service.do_query("reset password")
        scores = [s.relevance_score for s in response.sources]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_empty_question_rejected(self, rag_service, embed_client):
        with pytest.raises(QueryValidationError) as excinfo:
            await rag_service.do_query("   ")
        assert isinstance(excinfo.value, RAGError)
        assert isinstance(excinfo.value, ValueError)
        with pytest.raises(QueryValidationError):
            await rag_service.do_chat_with_history("", [])
        assert embed_client.calls == []


@pytest.mark.integration
class TestEmptyIndex:
    @pytest.mark.asyncio
    async def test_empty_index_gives_empty_response_without_generation(self, rag_service, llm_client):
        response = await rag_service.do_query("anything at all")
        assert response.state is PipelineState.EMPTY_RESPONSE
        assert response.answer == NO_INFORMATION_ANSWER
        assert response.sources == []
        assert response.confidence == 0.0
        assert llm_client.calls == []


@pytest.mark.integration
class TestChatWithHistory:
    @pytest.mark.asyncio
    async def test_follow_up_rewritten_with_prior_turns(self, rag_service, embed_client, faq_document):
        await rag_service.do_build_index_from_sources([faq_document], chunk_size=200, overlap_size=40)
        history = [
            ConversationTurn(role="user", content="What is GKE?"),
            ConversationTurn(role="assistant", content="GKE is a managed Kubernetes service."),
        ]

        await rag_service.do_chat_with_history("and how does it scale?", history)

        embedded_query = embed_client.calls[-1][0]
        assert "What is GKE?" in embedded_query
        assert "managed Kubernetes" in embedded_query
        assert embedded_query.endswith("and how does it scale?")

    @pytest.mark.asyncio
    async def test_without_history_question_is_unchanged(self, rag_service, embed_client):
        await rag_service.do_chat_with_history("plain question", [])
        assert embed_client.calls[-1] == ["plain question"]


@pytest.mark.integration
class TestDegradedPaths:
    @pytest.mark.asyncio
    async def test_generation_failing_twice_degrades_response(self, rag_service, llm_client, faq_document):
        await rag_service.do_build_index_from_sources([faq_document], chunk_size=200, overlap_size=40)
        llm_client.failures = 2

        response = await rag_service.do_query("reset password", options=QueryOptions(top_k=1))

        assert response.generation_failed is True
        assert response.answer == GENERATION_FAILED_ANSWER
        assert len(response.sources) == 1
        assert response.confidence > 0
        assert response.state is PipelineState.RESPONSE_RETURNED
        assert len(llm_client.calls) == 2

    @pytest.mark.asyncio
    async def test_single_generation_failure_is_retried(self, rag_service, llm_client, faq_document):
        await rag_service.do_build_index_from_sources([faq_document], chunk_size=200, overlap_size=40)
        llm_client.failures = 1

        response = await rag_service.do_query("reset password")

        assert response.generation_failed is False
        assert response.answer == llm_client.answer

    @pytest.mark.asyncio
    async def test_embedding_failure_surfaces(self, rag_service, embed_client):
        embed_client.fail_on = {"explode"}
        with pytest.raises(EmbeddingError):
            await rag_service.do_query("please explode")

    @pytest.mark.asyncio
    async def test_timeout_during_generation(self, rag_service, llm_client, faq_document):
        await rag_service.do_build_index_from_sources([faq_document], chunk_size=200, overlap_size=40)
        rag_service.query_timeout = 0.05
        llm_client.delay = 1.0
        with pytest.raises(GenerationError):
            await rag_service.do_query("reset password")

    @pytest.mark.asyncio
    async def test_timeout_during_retrieval(self, rag_service, embed_client, llm_client):
        rag_service.query_timeout = 0.05
        embed_client.delay = 1.0
        with pytest.raises(RetrievalError):
            await rag_service.do_query("reset password")
        assert llm_client.calls == []


@pytest.mark.integration
class TestOtherMetrics:
    @pytest.mark.asyncio
    async def test_dot_metric_reports_confidence_unavailable(
        self, monkeypatch, helper_config, embed_client, llm_client, faq_document,
    ):
        monkeypatch.setenv("RAG_DISTANCE", "dot")
        service = RAGService(helper_config, embed_client, RAGClientMemory(helper_config=helper_config), llm_client)
        await service.do_build_index_from_sources([faq_document], chunk_size=200, overlap_size=40)

        response = await service.do_query("reset password")

        assert response.confidence is None
        assert response.sources
