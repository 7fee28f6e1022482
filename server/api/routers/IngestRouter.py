"""Ingest router: chunk, embed and index documents."""

from fastapi import APIRouter, Depends, Request

from server.models.requests import IngestRequest
from shared.dependencies.auth import verify_api_key
from shared.models.rag import IngestionReport

ingest_router = APIRouter()


@ingest_router.post(
    "/ingest",
    dependencies=[Depends(verify_api_key)],
    tags=["Ingest"],
    response_model=IngestionReport,
)
async def handle_ingest(request: Request, body: IngestRequest) -> IngestionReport:
    """Index raw source texts or pre-chunked documents.

    Args:
        request (Request): The incoming FastAPI request (carries app state).
        body (IngestRequest): Sources (chunked server-side) or chunks.

    Returns:
        IngestionReport: Indexed and skipped counts with the ids of skipped chunks.
    """
    rag_service = request.app.state.rag_service
    if body.sources:
        request.app.state.logging.info("Ingest request with %d sources.", len(body.sources))
        return await rag_service.do_build_index_from_sources(
            body.sources,
            chunk_size=body.chunk_size,
            overlap_size=body.overlap_size,
            replace_existing=body.replace_existing,
        )
    request.app.state.logging.info("Ingest request with %d chunks.", len(body.chunks))
    return await rag_service.do_build_index(body.chunks)
