"""Ingestion service.

Validates chunks, generates embeddings via an EmbedClient with bounded
parallelism, and upserts the resulting vectors into the RAG backend.
A bad chunk or an embedding failure only costs that chunk: it is skipped,
logged as an IngestionError and reported; the rest of the batch continues.
"""

import asyncio

from services.rag_pipeline.DocumentChunker import DocumentChunker
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperRetry import do_with_retry
from shared.models.chunk import DocumentChunk, SourceText
from shared.models.errors import DimensionMismatchError, EmbeddingError, IngestionError
from shared.models.rag import IngestionReport
from shared.models.vector import VectorRecord


def _is_embedding_error(exc: BaseException) -> bool:
    return isinstance(exc, EmbeddingError)


def make_record(chunk: DocumentChunk, vector: list[float]) -> VectorRecord:
    """Build the index record for an embedded chunk; the payload carries the chunk text."""
    metadata = chunk.metadata.model_dump()
    metadata["content"] = chunk.content
    return VectorRecord(id=chunk.id, embedding=vector, metadata=metadata)


class IngestionService:
    """Builds the vector index from chunks or raw source texts."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        chunker: DocumentChunker | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed = embed_client
        self._rag = rag_client
        self._chunker = chunker or DocumentChunker(self.logging)

        self.embed_batch_size = max(1, int(embed_client.embed_batch_size))
        self.embed_concurrency = max(1, int(helper_config.get_number_val("EMBED_CONCURRENCY", default=4)))
        self.embed_retry_attempts = max(1, int(helper_config.get_number_val("EMBED_RETRY_ATTEMPTS", default=2)))
        self.embed_retry_base_delay = float(helper_config.get_number_val("EMBED_RETRY_BASE_DELAY", default=0.5))
        self.upsert_batch_size = max(1, int(helper_config.get_number_val("UPSERT_BATCH_SIZE", default=100)))
        self.chunk_size = int(helper_config.get_number_val("RAG_CHUNK_SIZE", default=1000))
        self.chunk_overlap = int(helper_config.get_number_val("RAG_CHUNK_OVERLAP", default=100))

    ##########################################
    ################ CORE ####################
    ##########################################

    async def do_build_index(self, chunks: list[DocumentChunk]) -> IngestionReport:
        """Embed and upsert chunks. Re-ingesting an id overwrites it.

        Args:
            chunks (list[DocumentChunk]): The chunks to index.

        Returns:
            IngestionReport: Counts plus id and message of every skipped chunk.

        Raises:
            DimensionMismatchError: If the embedding dimension differs from the index dimension.
            VectorIndexError: If an upsert keeps failing after retries.
        """
        self._check_dimensions()
        report = IngestionReport(total=len(chunks))
        positions: dict[str, int] = {}
        failures: list[IngestionError] = []
        valid: list[DocumentChunk] = []

        for position, chunk in enumerate(chunks):
            positions.setdefault(chunk.id, position)
            try:
                self._validate_chunk(chunk)
            except IngestionError as exc:
                failures.append(exc)
                continue
            valid.append(chunk)

        self.logging.info(
            "Ingesting %d chunks (%d rejected before embedding) into '%s'...",
            len(chunks), len(failures), self._rag.get_engine_name(),
        )

        # embed with bounded parallelism
        sem = asyncio.Semaphore(self.embed_concurrency)
        batches = [valid[i: i + self.embed_batch_size] for i in range(0, len(valid), self.embed_batch_size)]
        results = await asyncio.gather(*[self._embed_batch(batch, sem) for batch in batches])

        records: list[VectorRecord] = []
        for batch_records, batch_failures in results:
            records.extend(batch_records)
            failures.extend(batch_failures)

        # upsert in batches to avoid oversized requests
        for batch_start in range(0, len(records), self.upsert_batch_size):
            batch = records[batch_start: batch_start + self.upsert_batch_size]
            await self._rag.do_upsert(batch)
            report.indexed += len(batch)

        failures.sort(key=lambda exc: positions.get(exc.chunk_id, len(chunks)))
        for exc in failures:
            self.logging.error("Skipped chunk '%s': %s", exc.chunk_id, exc)
            report.failed_ids.append(exc.chunk_id)
            report.errors[exc.chunk_id] = str(exc)
        report.skipped = len(failures)

        self.logging.info(
            "Ingestion complete: %d indexed, %d skipped.", report.indexed, report.skipped,
            color="green" if not failures else None,
        )
        return report

    async def do_build_index_from_sources(
        self,
        sources: list[SourceText],
        chunk_size: int | None = None,
        overlap_size: int | None = None,
        replace_existing: bool = False,
    ) -> IngestionReport:
        """Chunk raw source texts and index the chunks.

        Args:
            sources (list[SourceText]): Texts with their source labels; reading files is the caller's job.
            chunk_size (int | None): Chunk size, defaults to RAG_CHUNK_SIZE.
            overlap_size (int | None): Overlap, defaults to RAG_CHUNK_OVERLAP.
            replace_existing (bool): After the new chunks of a source are indexed, delete its
                records that are not part of the new version. A source with skipped chunks
                keeps its earlier records.

        Returns:
            IngestionReport: See do_build_index().

        Raises:
            ValueError: If chunk_size / overlap_size are invalid.
            DimensionMismatchError, VectorIndexError: See do_build_index().
        """
        chunk_size = self.chunk_size if chunk_size is None else chunk_size
        overlap_size = self.chunk_overlap if overlap_size is None else overlap_size

        chunks: list[DocumentChunk] = []
        new_ids_by_source: dict[str, set[str]] = {}
        for source in sources:
            source_chunks = self._chunker.chunk(
                source.text, chunk_size, overlap_size, source=source.source, extra_metadata=source.metadata,
            )
            if not source_chunks:
                self.logging.info("Skipping source '%s': no content.", source.source)
                continue
            new_ids_by_source.setdefault(source.source, set()).update(chunk.id for chunk in source_chunks)
            chunks.extend(source_chunks)

        self.logging.info("Chunked %d sources into %d chunks.", len(sources), len(chunks))
        report = await self.do_build_index(chunks)
        if replace_existing:
            await self._do_remove_stale_records(new_ids_by_source, set(report.failed_ids))
        return report

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _do_remove_stale_records(self, new_ids_by_source: dict[str, set[str]], failed_ids: set[str]) -> None:
        """Delete records of each source that the freshly indexed version no longer contains."""
        for source, new_ids in new_ids_by_source.items():
            skipped = new_ids & failed_ids
            if skipped:
                self.logging.warning(
                    "Keeping earlier records of '%s': %d of its new chunks were skipped.", source, len(skipped),
                )
                continue
            stale = [record_id for record_id in await self._rag.do_list_record_ids({"source": source}) if record_id not in new_ids]
            if stale:
                await self._rag.do_delete_record_ids(stale)
                self.logging.info("Removed %d stale records of '%s'.", len(stale), source)

    def _check_dimensions(self) -> None:
        embed_dim = self._embed.get_dimension()
        if embed_dim is not None and embed_dim != self._rag.get_dimension():
            raise DimensionMismatchError(expected=self._rag.get_dimension(), actual=embed_dim)

    def _validate_chunk(self, chunk: DocumentChunk) -> None:
        """Raises IngestionError for chunks that must not reach the index."""
        if not chunk.id or not chunk.id.strip():
            raise IngestionError("Chunk has an empty id.", chunk_id=chunk.id)
        if not chunk.content or not chunk.content.strip():
            raise IngestionError(f"Chunk '{chunk.id}' has empty content.", chunk_id=chunk.id)

    async def _embed_batch(
        self,
        batch: list[DocumentChunk],
        sem: asyncio.Semaphore,
    ) -> tuple[list[VectorRecord], list[IngestionError]]:
        """Embed one batch; on repeated failure fall back to one request per chunk.

        Never raises for embedding failures; they are returned as IngestionErrors.
        """
        async with sem:
            texts = [chunk.content for chunk in batch]
            try:
                vectors = await do_with_retry(
                    lambda: self._embed.generate_batch_embeddings(texts),
                    logger=self.logging,
                    label=f"Embedding batch of {len(batch)} chunks",
                    attempts=self.embed_retry_attempts,
                    base_delay=self.embed_retry_base_delay,
                    should_retry=_is_embedding_error,
                )
                return [make_record(chunk, vector) for chunk, vector in zip(batch, vectors)], []
            except EmbeddingError as exc:
                if len(batch) == 1:
                    return [], [IngestionError(f"Embedding failed for chunk '{batch[0].id}': {exc}", chunk_id=batch[0].id, cause=exc)]
                self.logging.warning(
                    "Embedding batch of %d chunks failed (%s); embedding chunks one by one.", len(batch), exc,
                )

            records: list[VectorRecord] = []
            failures: list[IngestionError] = []
            for chunk in batch:
                try:
                    vector = await do_with_retry(
                        lambda c=chunk: self._embed.generate_embedding(c.content),
                        logger=self.logging,
                        label=f"Embedding chunk '{chunk.id}'",
                        attempts=self.embed_retry_attempts,
                        base_delay=self.embed_retry_base_delay,
                        should_retry=_is_embedding_error,
                    )
                except EmbeddingError as exc:
                    failures.append(IngestionError(f"Embedding failed for chunk '{chunk.id}': {exc}", chunk_id=chunk.id, cause=exc))
                    continue
                records.append(make_record(chunk, vector))
            return records, failures
