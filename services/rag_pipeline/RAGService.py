"""RAG service: orchestrates retrieval, context assembly and grounded generation.

Query flow:
  QueryReceived -> QueryEmbedded -> CandidatesRetrieved -> ContextAssembled
  -> AnswerSynthesized -> ResponseReturned

A query without retrieval results, or whose results do not fit into the
context budget, ends in EmptyResponse without calling the generation model.
The whole chain runs under a single timeout.
"""

import asyncio
from typing import Any

from services.rag_pipeline.AnswerSynthesizer import AnswerSynthesizer
from services.rag_pipeline.ConfidenceEstimator import ConfidenceEstimator
from services.rag_pipeline.ContextAssembler import ContextAssembler
from services.rag_pipeline.ConversationManager import rewrite_query
from services.rag_pipeline.IngestionService import IngestionService
from services.rag_pipeline.QueryCache import QueryEmbeddingCache
from services.rag_pipeline.RetrievalEngine import RetrievalEngine
from services.rag_pipeline.prompts import GENERATION_FAILED_ANSWER, NO_INFORMATION_ANSWER
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperRetry import do_with_retry
from shared.models.chunk import DocumentChunk, SourceText
from shared.models.errors import GenerationError, QueryValidationError, RetrievalError
from shared.models.rag import (
    ConversationTurn,
    IngestionReport,
    PipelineState,
    QueryOptions,
    RAGResponse,
    SourceReference,
)
from shared.models.vector import SearchResult

_RETRIEVED_STATES = (
    PipelineState.CANDIDATES_RETRIEVED,
    PipelineState.CONTEXT_ASSEMBLED,
    PipelineState.ANSWER_SYNTHESIZED,
    PipelineState.RESPONSE_RETURNED,
)


def _is_generation_error(exc: BaseException) -> bool:
    return isinstance(exc, GenerationError)


class _PipelineRun:
    """Mutable state of one query, readable after a timeout cancelled the chain."""

    def __init__(self, logger, query: str) -> None:
        self.logging = logger
        self.query = query
        self.state = PipelineState.QUERY_RECEIVED

    def advance(self, state: PipelineState) -> None:
        self.logging.debug("Query %r: %s -> %s", self.query[:60], self.state.value, state.value)
        self.state = state

    def has_candidates(self) -> bool:
        return self.state in _RETRIEVED_STATES


class RAGService:
    """Answers questions from the vector index and builds that index."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        llm_client: LLMClientInterface,
        cache: QueryEmbeddingCache | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._rag = rag_client

        if cache is None:
            cache = QueryEmbeddingCache(int(helper_config.get_number_val("RAG_CACHE_SIZE", default=256)))
        self.cache = cache

        self.retrieval = RetrievalEngine(helper_config, embed_client, rag_client, cache=cache)
        self.assembler = ContextAssembler()
        self.confidence = ConfidenceEstimator(rag_client.get_distance())
        self.synthesizer = AnswerSynthesizer(helper_config, llm_client)
        self.ingestion = IngestionService(helper_config, embed_client, rag_client)

        # defaults for unset QueryOptions fields
        self.top_k = int(helper_config.get_number_val("RAG_TOP_K", default=5))
        self.max_context_chars = int(helper_config.get_number_val("RAG_MAX_CONTEXT_CHARS", default=4000))
        self.temperature = float(helper_config.get_number_val("LLM_TEMPERATURE", default=0.2))
        self.max_tokens = int(helper_config.get_number_val("LLM_MAX_TOKENS", default=512))
        self.query_timeout = float(helper_config.get_number_val("RAG_QUERY_TIMEOUT", default=60))
        self.history_context_turns = int(helper_config.get_number_val("RAG_HISTORY_CONTEXT_TURNS", default=4))
        self.llm_retry_attempts = max(1, int(helper_config.get_number_val("LLM_RETRY_ATTEMPTS", default=2)))
        self.llm_retry_base_delay = float(helper_config.get_number_val("LLM_RETRY_BASE_DELAY", default=0.5))

    ##########################################
    ################ QUERY ###################
    ##########################################

    async def do_query(self, question: str, options: QueryOptions | None = None) -> RAGResponse:
        """Answer a question from the indexed documents.

        Args:
            question (str): The user's question.
            options (QueryOptions | None): Per-query overrides.

        Returns:
            RAGResponse: The grounded answer, an EmptyResponse, or a degraded
                response if generation failed repeatedly.

        Raises:
            EmbeddingError: If the question cannot be embedded.
            VectorIndexError: If the index search fails.
            RetrievalError: If the timeout hits before candidates were retrieved.
            QueryValidationError: If the question is blank.
            GenerationError: If the timeout hits after candidates were retrieved.
        """
        if not question or not question.strip():
            raise QueryValidationError("Question must not be empty.")
        options = options or QueryOptions()

        run = _PipelineRun(self.logging, question)
        timeout = self.query_timeout if self.query_timeout > 0 else None
        try:
            return await asyncio.wait_for(self._do_run_pipeline(run, question, options), timeout=timeout)
        except asyncio.TimeoutError as exc:
            if run.has_candidates():
                self.logging.error("Query timed out after %.1fs during generation (state %s).", self.query_timeout, run.state.value)
                raise GenerationError(f"Query timed out after {self.query_timeout}s while generating the answer.", cause=exc) from exc
            self.logging.error("Query timed out after %.1fs during retrieval (state %s).", self.query_timeout, run.state.value)
            raise RetrievalError(f"Query timed out after {self.query_timeout}s while retrieving candidates.", cause=exc) from exc

    async def do_chat_with_history(
        self,
        question: str,
        history: list[ConversationTurn],
        options: QueryOptions | None = None,
        last_k: int | None = None,
    ) -> RAGResponse:
        """Answer a follow-up question; the last turns are prepended before embedding.

        Args:
            question (str): The follow-up question.
            history (list[ConversationTurn]): Earlier turns, oldest first.
            options (QueryOptions | None): Per-query overrides.
            last_k (int | None): Turns to include, defaults to RAG_HISTORY_CONTEXT_TURNS.

        Returns:
            RAGResponse: See do_query().
        """
        if not question or not question.strip():
            raise QueryValidationError("Question must not be empty.")
        last_k = self.history_context_turns if last_k is None else last_k
        rewritten = rewrite_query(question, history, last_k=last_k)
        if rewritten != question:
            self.logging.debug("Rewrote follow-up question with %d prior turns.", min(last_k, len(history)))
        return await self.do_query(rewritten, options=options)

    ##########################################
    ############### INGESTION ################
    ##########################################

    async def do_build_index(self, chunks: list[DocumentChunk]) -> IngestionReport:
        return await self.ingestion.do_build_index(chunks)

    async def do_build_index_from_sources(
        self,
        sources: list[SourceText],
        chunk_size: int | None = None,
        overlap_size: int | None = None,
        replace_existing: bool = False,
    ) -> IngestionReport:
        return await self.ingestion.do_build_index_from_sources(
            sources, chunk_size=chunk_size, overlap_size=overlap_size, replace_existing=replace_existing,
        )

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _do_run_pipeline(self, run: _PipelineRun, question: str, options: QueryOptions) -> RAGResponse:
        top_k = options.top_k or self.top_k
        max_context_chars = options.max_context_chars or self.max_context_chars
        temperature = self.temperature if options.temperature is None else options.temperature
        max_tokens = options.max_tokens or self.max_tokens
        filters: dict[str, Any] | None = options.filters or None

        self.logging.info("Executing query %r (top_k=%d).", question[:80], top_k)

        results = await self.retrieval.do_retrieve(
            question, top_k=top_k, filters=filters, on_embedded=lambda: run.advance(PipelineState.QUERY_EMBEDDED),
        )
        if not results:
            self.logging.info("No candidates found for query %r.", question[:80])
            return self._empty_response(run, options)
        run.advance(PipelineState.CANDIDATES_RETRIEVED)

        assembled = self.assembler.assemble(results, max_context_chars)
        if not assembled.used_results:
            self.logging.info("None of %d candidates fits into %d context characters.", len(results), max_context_chars)
            return self._empty_response(run, options)
        run.advance(PipelineState.CONTEXT_ASSEMBLED)
        sources = self._build_sources(assembled.used_results)
        confidence = self.confidence.estimate(assembled.used_results)

        generation_failed = False
        try:
            answer = await do_with_retry(
                lambda: self.synthesizer.do_synthesize(question, assembled.context, temperature, max_tokens),
                logger=self.logging,
                label="Answer generation",
                attempts=self.llm_retry_attempts,
                base_delay=self.llm_retry_base_delay,
                should_retry=_is_generation_error,
            )
        except GenerationError as exc:
            self.logging.error("Answer generation failed after %d attempts: %s", self.llm_retry_attempts, exc)
            answer = GENERATION_FAILED_ANSWER
            generation_failed = True
        run.advance(PipelineState.ANSWER_SYNTHESIZED)

        response = RAGResponse(
            answer=answer,
            sources=sources,
            context=assembled.context if options.include_context else None,
            confidence=confidence,
            state=PipelineState.RESPONSE_RETURNED,
            generation_failed=generation_failed,
        )
        run.advance(PipelineState.RESPONSE_RETURNED)
        self.logging.info(
            "Query complete: %d sources, confidence=%s%s.",
            len(sources),
            "n/a" if confidence is None else f"{confidence:.2f}",
            " (generation failed)" if generation_failed else "",
        )
        return response

    @staticmethod
    def _empty_response(run: _PipelineRun, options: QueryOptions) -> RAGResponse:
        run.advance(PipelineState.EMPTY_RESPONSE)
        return RAGResponse(
            answer=NO_INFORMATION_ANSWER,
            sources=[],
            context="" if options.include_context else None,
            confidence=0.0,
            state=PipelineState.EMPTY_RESPONSE,
        )

    def _build_sources(self, results: list[SearchResult]) -> list[SourceReference]:
        return [
            SourceReference(
                content=result.get_content(),
                source=result.get_source(),
                relevance_score=self.confidence.relevance_score(result),
            )
            for result in results
        ]
