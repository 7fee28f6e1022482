"""Query router: grounded question answering, single-shot and per conversation session."""

from fastapi import APIRouter, Depends, Request

from server.models.requests import ChatRequest, QueryRequest
from server.models.responses import ChatResponse, SessionClearedResponse
from shared.dependencies.auth import verify_api_key
from shared.models.rag import RAGResponse

query_router = APIRouter()


@query_router.post(
    "/query",
    dependencies=[Depends(verify_api_key)],
    tags=["Query"],
    response_model=RAGResponse,
)
async def handle_query(request: Request, body: QueryRequest) -> RAGResponse:
    """Answer a single question from the indexed documents.

    Args:
        request (Request): The incoming FastAPI request (carries app state).
        body (QueryRequest): The question and optional per-query overrides.

    Returns:
        RAGResponse: Answer, sources, confidence and terminal pipeline state.
    """
    request.app.state.logging.info("Query received: %r", body.question[:80])
    return await request.app.state.rag_service.do_query(body.question, options=body.options)


@query_router.post(
    "/chat/{session_id}",
    dependencies=[Depends(verify_api_key)],
    tags=["Query"],
    response_model=ChatResponse,
)
async def handle_chat(request: Request, session_id: str, body: ChatRequest) -> ChatResponse:
    """Answer a follow-up question within a conversation session.

    The session is created on first use; the question is prefixed with the
    latest turns of the session before retrieval.
    """
    request.app.state.logging.info("Chat message received for session %r: %r", session_id, body.question[:80])
    conversation = request.app.state.sessions.get_or_create(session_id)
    response = await conversation.do_ask(body.question, request.app.state.rag_service, options=body.options)
    return ChatResponse(
        **response.model_dump(),
        session_id=session_id,
        history_turns=len(conversation.get_history()),
    )


@query_router.delete(
    "/chat/{session_id}",
    dependencies=[Depends(verify_api_key)],
    tags=["Query"],
    response_model=SessionClearedResponse,
)
async def handle_chat_delete(request: Request, session_id: str) -> SessionClearedResponse:
    cleared = request.app.state.sessions.drop(session_id)
    return SessionClearedResponse(session_id=session_id, cleared=cleared)
