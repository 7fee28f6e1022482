"""Per-session conversation history and follow-up query rewriting.

Rewriting is plain string concatenation: the last K turns are written as
"role: content" lines ahead of the new question. No coreference resolution
is attempted.
"""

import asyncio
from collections import OrderedDict
from typing import TYPE_CHECKING, Literal

from shared.helper.HelperConfig import HelperConfig
from shared.models.rag import ConversationTurn, QueryOptions, RAGResponse

if TYPE_CHECKING:
    from services.rag_pipeline.RAGService import RAGService


def format_turn(turn: ConversationTurn) -> str:
    return f"{turn.role}: {turn.content}"


def rewrite_query(question: str, history: list[ConversationTurn], last_k: int = 4) -> str:
    """Prefix the question with the last K turns of the conversation.

    Args:
        question (str): The follow-up question.
        history (list[ConversationTurn]): Earlier turns, oldest first.
        last_k (int): How many of the most recent turns to include.

    Returns:
        str: "role: content" lines of the selected turns followed by the question,
            or the question itself when no turn is selected.
    """
    if last_k <= 0 or not history:
        return question
    lines = [format_turn(turn) for turn in history[-last_k:]]
    lines.append(question)
    return "\n".join(lines)


class ConversationManager:
    """History of one session, capped to the most recent max_turns turns.

    Turns of the same session are serialized: do_ask() holds a lock from reading
    the history until both new turns are appended.
    """

    def __init__(self, session_id: str, max_turns: int = 8, context_turns: int = 4) -> None:
        if max_turns < 1:
            raise ValueError(f"max_turns must be at least 1, got {max_turns}.")
        self.session_id = session_id
        self.max_turns = max_turns
        self.context_turns = context_turns
        self._turns: list[ConversationTurn] = []
        self._lock = asyncio.Lock()

    def get_history(self) -> list[ConversationTurn]:
        """Return a copy of the history, oldest first."""
        return list(self._turns)

    def add_turn(self, role: Literal["user", "assistant"], content: str) -> None:
        self._turns.append(ConversationTurn(role=role, content=content))
        overflow = len(self._turns) - self.max_turns
        if overflow > 0:
            del self._turns[:overflow]

    def clear(self) -> None:
        self._turns.clear()

    def rewrite_query(self, question: str) -> str:
        return rewrite_query(question, self._turns, last_k=self.context_turns)

    async def do_ask(self, question: str, rag_service: "RAGService", options: QueryOptions | None = None) -> RAGResponse:
        """Answer a question in the context of this session and record the turn.

        Errors propagate and leave the history untouched.

        Args:
            question (str): The user's question.
            rag_service (RAGService): The pipeline answering the question.
            options (QueryOptions | None): Per-query overrides.

        Returns:
            RAGResponse: The pipeline response.
        """
        async with self._lock:
            response = await rag_service.do_chat_with_history(
                question, self.get_history(), options=options, last_k=self.context_turns,
            )
            self.add_turn("user", question)
            self.add_turn("assistant", response.answer)
            return response


class SessionRegistry:
    """Hands out one ConversationManager per session id.

    At most RAG_MAX_SESSIONS sessions are kept; opening one more forgets the
    least recently used session.
    """

    def __init__(self, helper_config: HelperConfig) -> None:
        self.logging = helper_config.get_logger()
        self.max_turns = int(helper_config.get_number_val("RAG_HISTORY_MAX_TURNS", default=8))
        self.context_turns = int(helper_config.get_number_val("RAG_HISTORY_CONTEXT_TURNS", default=4))
        self.max_sessions = int(helper_config.get_number_val("RAG_MAX_SESSIONS", default=1000))
        if self.max_sessions < 1:
            raise ValueError("RAG_MAX_SESSIONS must be at least 1.")
        self._sessions: OrderedDict[str, ConversationManager] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def get_or_create(self, session_id: str) -> ConversationManager:
        manager = self._sessions.get(session_id)
        if manager is not None:
            self._sessions.move_to_end(session_id)
            return manager

        manager = ConversationManager(session_id, max_turns=self.max_turns, context_turns=self.context_turns)
        self._sessions[session_id] = manager
        self.logging.debug("Opened conversation session %r.", session_id)
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            self.logging.info("Session limit %d reached, forgot conversation session %r.", self.max_sessions, evicted)
        return manager

    def drop(self, session_id: str) -> bool:
        """Forget a session. Returns False if it did not exist."""
        removed = self._sessions.pop(session_id, None) is not None
        if removed:
            self.logging.debug("Closed conversation session %r.", session_id)
        return removed
