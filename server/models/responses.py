from pydantic import BaseModel

from shared.models.rag import RAGResponse


class ChatResponse(RAGResponse):
    session_id: str
    history_turns: int


class SessionClearedResponse(BaseModel):
    session_id: str
    cleared: bool
