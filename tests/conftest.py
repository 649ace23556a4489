"""Pytest configuration and shared fixtures."""

import re
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from chatbuilder.agent.llm_config import ChatMessage, LLMSettings
from chatbuilder.agent.orchestrator import ChatOrchestrator
from chatbuilder.api.dependencies import build_services
from chatbuilder.db.repositories import SqlChatbotStore, SqlConversationStore, SqlDocumentStore
from chatbuilder.db.session import create_db_engine, create_session_factory, init_db
from chatbuilder.exceptions import CompletionError, EmbeddingError
from chatbuilder.ingestion.ingest import IngestionService
from chatbuilder.rag.config import RAGConfig
from chatbuilder.rag.embedding_service import EmbeddingService
from chatbuilder.rag.vector_store import VectorIndex

VOCABULARY = ["refund", "window", "days", "shipping", "pricing", "lorem", "support"]


class KeywordEmbeddingService(EmbeddingService):
    """
    Deterministic embeddings for tests.

    One dimension per vocabulary word (its count in the text) plus a constant
    bias dimension, so unrelated texts are never zero vectors.
    """

    model_name = "keyword-test"

    def __init__(self, fail_on: Sequence[str] = ()):
        self.calls: List[str] = []
        self.fail_on = list(fail_on)

    async def _embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingError(f"embedding provider rejected input: {text[:20]}")
        words = re.findall(r"[a-z]+", text.lower())
        return [float(words.count(w)) for w in VOCABULARY] + [0.1]


class ScriptedLLMClient:
    """
    Stand-in for LLMClient that streams a fixed answer.

    If fail_after is set, a CompletionError is raised once that many
    fragments have been yielded.
    """

    api_key = "test-key"

    def __init__(self, fragments: Sequence[str] = ("Refunds are ", "accepted within ", "30 days."),
                 fail_after: Optional[int] = None):
        self.fragments = list(fragments)
        self.fail_after = fail_after
        self.calls: List[dict] = []
        self.closed = False

    def build_model_string(self, model: Optional[str] = None) -> str:
        return f"openrouter/{model or 'openai/gpt-5'}"

    async def stream_completion(self, messages: Sequence[ChatMessage], model=None, temperature=None):
        self.calls.append({"messages": list(messages), "model": model, "temperature": temperature})
        try:
            for i, fragment in enumerate(self.fragments):
                if self.fail_after is not None and i >= self.fail_after:
                    raise CompletionError("upstream connection reset")
                yield fragment
            if self.fail_after is not None and self.fail_after >= len(self.fragments):
                raise CompletionError("upstream connection reset")
        finally:
            self.closed = True

    async def get_completion(self, messages: Sequence[ChatMessage], model=None, temperature=None) -> str:
        self.calls.append({"messages": list(messages), "model": model, "temperature": temperature})
        if self.fail_after is not None:
            raise CompletionError("upstream connection reset")
        return "".join(self.fragments)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def index_path(tmp_path):
    """Path for a throwaway vector index file."""
    return tmp_path / "index" / "vectors.json"


@pytest.fixture
def rag_config(index_path):
    return RAGConfig(index_path=str(index_path), chunk_size=500, top_k=3)


@pytest.fixture
def llm_settings():
    return LLMSettings(llm_model="openai/gpt-5", llm_temperature=0.7, llm_api_key="test-key")


@pytest.fixture
def session_factory():
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def document_store(session_factory):
    return SqlDocumentStore(session_factory)


@pytest.fixture
def conversation_store(session_factory):
    return SqlConversationStore(session_factory)


@pytest.fixture
def chatbot_store(session_factory):
    return SqlChatbotStore(session_factory)


@pytest.fixture
def vector_index(index_path):
    return VectorIndex(str(index_path))


@pytest.fixture
def embedder():
    return KeywordEmbeddingService()


@pytest.fixture
def llm_client():
    return ScriptedLLMClient()


@pytest.fixture
def ingestion(embedder, vector_index, document_store, rag_config):
    return IngestionService(embedder, vector_index, document_store, rag_config)


@pytest.fixture
def orchestrator(embedder, vector_index, llm_client, document_store, conversation_store, chatbot_store):
    return ChatOrchestrator(
        embedding_service=embedder,
        index=vector_index,
        llm_client=llm_client,
        documents=document_store,
        conversations=conversation_store,
        chatbots=chatbot_store,
        top_k=3,
    )


@pytest.fixture
def services(rag_config, llm_settings, embedder, llm_client):
    """Full service graph over SQLite and test doubles for the providers."""
    svc = build_services(
        rag_config=rag_config,
        llm_settings=llm_settings,
        database_url="sqlite://",
        embedding_service=embedder,
        llm_client=llm_client,
    )
    yield svc
    svc.engine.dispose()


@pytest.fixture
def make_orchestrator(vector_index, document_store, conversation_store, chatbot_store):
    """
    Build an orchestrator with its own test doubles.

    Returns a factory taking (embed_fail_on, llm_fail_after) and returning
    (orchestrator, llm_client).
    """

    def factory(embed_fail_on: Sequence[str] = (), llm_fail_after: Optional[int] = None):
        llm = ScriptedLLMClient(fail_after=llm_fail_after)
        orchestrator = ChatOrchestrator(
            embedding_service=KeywordEmbeddingService(fail_on=embed_fail_on),
            index=vector_index,
            llm_client=llm,
            documents=document_store,
            conversations=conversation_store,
            chatbots=chatbot_store,
        )
        return orchestrator, llm

    return factory


@pytest.fixture
def make_ingestion(vector_index, document_store, rag_config):
    """Factory for an IngestionService whose embedder fails on chosen markers."""

    def factory(embed_fail_on: Sequence[str] = (), concurrency: int = 1):
        config = rag_config.model_copy(update={"embedding_concurrency": concurrency})
        embedder = KeywordEmbeddingService(fail_on=embed_fail_on)
        return IngestionService(embedder, vector_index, document_store, config), embedder

    return factory
