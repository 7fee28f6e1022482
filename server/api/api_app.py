"""FastAPI application entry point for the RAG pipeline API."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import os
from server.api.routers.IngestRouter import ingest_router
from server.api.routers.QueryRouter import query_router
from services.rag_pipeline.ConversationManager import SessionRegistry
from services.rag_pipeline.RAGService import RAGService
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.errors import (
    EmbeddingError,
    GenerationError,
    QueryValidationError,
    RAGError,
    RetrievalError,
    VectorIndexError,
)

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")

# first match wins, subclasses before their bases
_ERROR_STATUS: tuple[tuple[type[RAGError], int], ...] = (
    (QueryValidationError, 422),
    (RetrievalError, 504),
    (GenerationError, 504),
    (EmbeddingError, 502),
    (VectorIndexError, 502),
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown."""
    app.state.logging = setup_logging()
    app.state.config = HelperConfig(logger=app.state.logging)
    app.state.api_key = app.state.config.get_string_val("APP_API_KEY")

    # Initialise clients
    embed_client = EmbedClientManager(helper_config=app.state.config).get_client()
    rag_client = RAGClientManager(helper_config=app.state.config).get_client()
    llm_client = LLMClientManager(helper_config=app.state.config).get_client()
    clients = (embed_client, rag_client, llm_client)
    for client in clients:
        await client.boot()

    # Health checks
    for client in clients:
        await client.do_healthcheck()

    # Ensure the vector collection exists
    await rag_client.do_ensure_collection()

    # Wire up services
    app.state.rag_service = RAGService(
        helper_config=app.state.config,
        embed_client=embed_client,
        rag_client=rag_client,
        llm_client=llm_client,
    )
    app.state.sessions = SessionRegistry(helper_config=app.state.config)

    app.state.logging.info("RAG API ready.", color="green")
    yield

    # Shutdown
    for client in clients:
        await client.close()
    app.state.logging.info("RAG API shut down.")


async def handle_rag_error(request: Request, exc: RAGError) -> JSONResponse:
    status_code = next((status for error_type, status in _ERROR_STATUS if isinstance(exc, error_type)), 500)
    request.app.state.logging.error(
        "%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc,
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    request.app.state.logging.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=422, content={"detail": str(exc)})


def create_app(lifespan_handler: Callable = lifespan) -> FastAPI:
    """Build the FastAPI application.

    Args:
        lifespan_handler (Callable): Startup/shutdown context; tests pass one that wires in-memory clients.

    Returns:
        FastAPI: The configured application.
    """
    application = FastAPI(
        title="RAG Pipeline",
        description="Retrieval-augmented question answering over indexed documents.",
        version=app_version,
        lifespan=lifespan_handler,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(RAGError, handle_rag_error)
    application.add_exception_handler(ValueError, handle_value_error)

    application.include_router(query_router)
    application.include_router(ingest_router)
    return application


app = create_app()


# Server Start
if __name__ == "__main__":
    # start server
    import uvicorn
    port = int(os.getenv("APP_PORT", "8000"))
    logging.info(f"Starting RAG API Server v{app_version} on port {port}...")
    uvicorn.run(app, host="0.0.0.0", port=port)
