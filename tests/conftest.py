"""
Pytest configuration and shared fixtures for the test suite.
Puts the project root on the Python path and provides in-process fakes for
the embedding provider and the generation model, plus the in-memory index.
"""
import asyncio
import hashlib
import logging
import math
import re
import sys
from pathlib import Path

import pytest

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from services.rag_pipeline.RAGService import RAGService  # noqa: E402
from shared.clients.embed.ollama.EmbedClientOllama import EmbedClientOllama  # noqa: E402
from shared.clients.llm.ollama.LLMClientOllama import LLMClientOllama  # noqa: E402
from shared.clients.rag.memory.RAGClientMemory import RAGClientMemory  # noqa: E402
from shared.helper.HelperConfig import HelperConfig  # noqa: E402
from shared.logging.logging_setup import ColorLogger  # noqa: E402
from shared.models.chunk import SourceText  # noqa: E402
from shared.models.errors import ClientRequestError  # noqa: E402

TEST_DIMENSION = 256

FAQ_SOURCE = "FAQ: reset password"
FAQ_TEXT = " ".join([
    "Reset password steps: open Settings, choose Security, then click the reset password link "
    "and follow the email we send to confirm the new credentials quickly.",
    "Billing questions are handled by the finance team, which answers invoices, refunds and "
    "payment method changes within two business days of any request.",
    "Shipping usually takes three to five days inside Europe; international parcels may need "
    "customs paperwork, which our logistics partner prepares for you.",
])


def hash_embedding(text: str, dimension: int = TEST_DIMENSION) -> list[float]:
    """Deterministic bag-of-words vector: every token is hashed into one bucket, then L2-normalised."""
    vector = [0.0] * dimension
    for token in re.findall(r"\w+", text.lower()):
        digest = hashlib.md5(token.encode("utf-8")).digest()
        vector[int.from_bytes(digest[:4], "big") % dimension] += 1.0
    norm = math.sqrt(sum(v * v for v in vector))
    return [v / norm for v in vector] if norm else vector


class FakeEmbedClient(EmbedClientOllama):
    """Ollama embed client whose HTTP call is replaced by hash_embedding()."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.calls: list[list[str]] = []
        self.fail_on: set[str] = set()
        self.delay = 0.0
        self.active = 0
        self.max_active = 0

    async def do_embed(self, texts):
        texts = [texts] if isinstance(texts, str) else list(texts)
        self.calls.append(texts)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if any(marker in text for text in texts for marker in self.fail_on):
                raise ClientRequestError(500, "http://embed.test/api/embed", body="boom")
            return [hash_embedding(text, self._dimension) for text in texts]
        finally:
            self.active -= 1

    def embedded_texts(self) -> list[str]:
        return [text for call in self.calls for text in call]


class FakeLLMClient(LLMClientOllama):
    """Ollama chat client with a canned answer and scriptable failures."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.calls: list[list[dict]] = []
        self.answer = "Open Settings and click the reset password link [doc1]."
        self.failures = 0
        self.delay = 0.0

    async def do_chat(self, messages, temperature=0.2, max_tokens=512):
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise ClientRequestError(503, "http://llm.test/api/chat", body="overloaded")
        return self.answer


# ----- Environment -----
@pytest.fixture(autouse=True)
def env(monkeypatch):
    """Baseline configuration: in-memory index, fake-friendly Ollama settings, no retry delays."""
    values = {
        "EMBED_ENGINE": "ollama",
        "EMBED_MODEL": "test-embed",
        "EMBED_OLLAMA_BASE_URL": "http://embed.test",
        "EMBED_DIMENSION": str(TEST_DIMENSION),
        "EMBED_RETRY_BASE_DELAY": "0",
        "RAG_ENGINE": "memory",
        "RAG_DIMENSION": str(TEST_DIMENSION),
        "RAG_DISTANCE": "cosine",
        "RAG_RETRY_BASE_DELAY": "0",
        "LLM_ENGINE": "ollama",
        "LLM_MODEL": "test-chat",
        "LLM_OLLAMA_BASE_URL": "http://llm.test",
        "LLM_RETRY_BASE_DELAY": "0",
        "APP_API_KEY": "test-key",
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    for key in ("LOG_DIR", "ROOT_DIR", "RAG_QUERY_TIMEOUT", "RAG_TOP_K", "EMBED_BATCH_SIZE", "EMBED_CONCURRENCY", "RAG_MAX_SESSIONS"):
        monkeypatch.delenv(key, raising=False)
    return values


@pytest.fixture
def logger():
    return ColorLogger(logging.getLogger("rag_pipeline.tests"))


@pytest.fixture
def helper_config(logger):
    return HelperConfig(logger=logger)


# ----- Clients -----
@pytest.fixture
def embed_client(helper_config):
    return FakeEmbedClient(helper_config)


@pytest.fixture
def llm_client(helper_config):
    return FakeLLMClient(helper_config)


@pytest.fixture
def rag_client(helper_config):
    return RAGClientMemory(helper_config=helper_config)


@pytest.fixture
def faq_document():
    """Three-sentence FAQ that splits into exactly three chunks at chunk_size=200, overlap=40."""
    return SourceText(text=FAQ_TEXT, source=FAQ_SOURCE, metadata={"lang": "en"})


@pytest.fixture
def rag_service(helper_config, embed_client, rag_client, llm_client):
    return RAGService(
        helper_config=helper_config,
        embed_client=embed_client,
        rag_client=rag_client,
        llm_client=llm_client,
    )
