"""
API integration tests using FastAPI TestClient with in-memory clients.
"""
from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from server.api import api_app
from server.api.api_app import create_app
from services.rag_pipeline.ConversationManager import SessionRegistry
from services.rag_pipeline.prompts import NO_INFORMATION_ANSWER

HEADERS = {"X-API-Key": "test-key"}


@pytest.fixture
def api_client(helper_config, rag_service):
    @asynccontextmanager
    async def lifespan(app):
        app.state.logging = helper_config.get_logger()
        app.state.config = helper_config
        app.state.api_key = helper_config.get_string_val("APP_API_KEY")
        app.state.rag_service = rag_service
        app.state.sessions = SessionRegistry(helper_config)
        yield

    with TestClient(create_app(lifespan_handler=lifespan)) as client:
        yield client


@pytest.fixture
def faq_payload(faq_document):
    return {"sources": [faq_document.model_dump()], "chunk_size": 200, "overlap_size": 40}


@pytest.mark.integration
class TestAuth:
    def test_missing_key_rejected(self, api_client):
        response = api_client.post("/query", json={"question": "hi"})
        assert response.status_code == 401

    def test_wrong_key_rejected(self, api_client):
        response = api_client.post("/query", json={"question": "hi"}, headers={"X-API-Key": "nope"})
        assert response.status_code == 401


@pytest.mark.integration
class TestIngestRoute:
    def test_ingest_sources(self, api_client, faq_payload):
        response = api_client.post("/ingest", json=faq_payload, headers=HEADERS)
        assert response.status_code == 200
        body = response.json()
        assert body["indexed"] == 3
        assert body["failed_ids"] == []

    def test_ingest_chunks_reports_skipped(self, api_client):
        chunks = [
            {"id": f"doc::{i}", "content": content, "metadata": {"source": "doc", "chunk_index": i, "total_chunks": 2}}
            for i, content in enumerate(["Some text.", ""])
        ]
        response = api_client.post("/ingest", json={"chunks": chunks}, headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["failed_ids"] == ["doc::1"]

    def test_invalid_chunk_parameters_are_422(self, api_client, faq_payload):
        faq_payload["overlap_size"] = 500
        response = api_client.post("/ingest", json=faq_payload, headers=HEADERS)
        assert response.status_code == 422

    def test_sources_and_chunks_are_exclusive(self, api_client):
        response = api_client.post("/ingest", json={}, headers=HEADERS)
        assert response.status_code == 422


@pytest.mark.integration
class TestQueryRoute:
    def test_query_after_ingest(self, api_client, faq_payload):
        api_client.post("/ingest", json=faq_payload, headers=HEADERS)
        response = api_client.post("/query", json={"question": "how do I reset my password"}, headers=HEADERS)
        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "ResponseReturned"
        assert "reset password" in body["sources"][0]["content"]
        assert body["generation_failed"] is False

    def test_query_on_empty_index(self, api_client):
        response = api_client.post("/query", json={"question": "anything"}, headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["answer"] == NO_INFORMATION_ANSWER
        assert response.json()["state"] == "EmptyResponse"

    def test_embedding_failure_is_502(self, api_client, embed_client):
        embed_client.fail_on = {"explode"}
        response = api_client.post("/query", json={"question": "explode now"}, headers=HEADERS)
        assert response.status_code == 502
        assert response.json()["error"] == "EmbeddingError"

    def test_timeout_is_504(self, api_client, rag_service, embed_client):
        rag_service.query_timeout = 0.05
        embed_client.delay = 1.0
        response = api_client.post("/query", json={"question": "slow"}, headers=HEADERS)
        assert response.status_code == 504
        assert response.json()["error"] == "RetrievalError"

    def test_empty_question_is_422(self, api_client):
        response = api_client.post("/query", json={"question": ""}, headers=HEADERS)
        assert response.status_code == 422

    def test_blank_question_is_422(self, api_client, embed_client):
        response = api_client.post("/query", json={"question": "   "}, headers=HEADERS)
        assert response.status_code == 422
        assert response.json()["error"] == "QueryValidationError"
        assert embed_client.calls == []


@pytest.mark.integration
class TestChatRoutes:
    def test_chat_keeps_history_per_session(self, api_client, embed_client, faq_payload):
        api_client.post("/ingest", json=faq_payload, headers=HEADERS)

        first = api_client.post("/chat/s1", json={"question": "What is GKE?"}, headers=HEADERS)
        second = api_client.post("/chat/s1", json={"question": "and how does it scale?"}, headers=HEADERS)

        assert first.status_code == 200
        assert first.json()["history_turns"] == 2
        assert second.json()["history_turns"] == 4
        assert second.json()["session_id"] == "s1"
        assert "user: What is GKE?" in embed_client.calls[-1][0]

    def test_sessions_are_isolated(self, api_client, embed_client):
        api_client.post("/chat/a", json={"question": "first in a"}, headers=HEADERS)
        api_client.post("/chat/b", json={"question": "first in b"}, headers=HEADERS)
        assert embed_client.calls[-1] == ["first in b"]

    def test_delete_session(self, api_client, embed_client):
        api_client.post("/chat/s1", json={"question": "hello"}, headers=HEADERS)

        response = api_client.delete("/chat/s1", headers=HEADERS)
        assert response.status_code == 200
        assert response.json() == {"session_id": "s1", "cleared": True}
        assert api_client.delete("/chat/s1", headers=HEADERS).json()["cleared"] is False

        api_client.post("/chat/s1", json={"question": "fresh start"}, headers=HEADERS)
        assert embed_client.calls[-1] == ["fresh start"]


@pytest.mark.integration
class TestStartup:
    def test_every_backend_is_health_checked(self, monkeypatch, embed_client, rag_client, llm_client):
        checked: list[str] = []

        def record(name):
            async def healthcheck():
                checked.append(name)
            return healthcheck

        for name, client, manager in (
            ("embed", embed_client, "EmbedClientManager"),
            ("rag", rag_client, "RAGClientManager"),
            ("llm", llm_client, "LLMClientManager"),
        ):
            monkeypatch.setattr(client, "do_healthcheck", record(name))
            monkeypatch.setattr(api_app, manager, lambda helper_config, client=client: SimpleNamespace(get_client=lambda: client))

        with TestClient(create_app()) as client:
            assert checked == ["embed", "rag", "llm"]
            assert client.post("/query", json={"question": "anything"}, headers=HEADERS).status_code == 200
        assert embed_client._client is None
