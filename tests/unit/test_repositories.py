"""Unit tests for the SQLAlchemy stores."""

import pytest

from chatbuilder.models.chat import DEFAULT_SYSTEM_PROMPT
from chatbuilder.models.document import Citation
from chatbuilder.rag.vector_store import EmbeddingRecord


class TestDocumentStore:
    """Tests for SqlDocumentStore."""

    def test_create_and_get(self, document_store):
        doc = document_store.create_document(
            title="Refund Policy",
            content="Our refund window is 30 days.",
            source_type="crawl",
            source_url="https://acme.test/refunds",
            company_id="acme",
        )

        fetched = document_store.get_document(doc.id)
        assert fetched.title == "Refund Policy"
        assert fetched.source_url == "https://acme.test/refunds"
        assert fetched.company_id == "acme"
        assert fetched.created_at is not None

    def test_get_missing(self, document_store):
        assert document_store.get_document("nope") is None

    def test_delete_cascades_embeddings(self, document_store):
        """Test deleting a document removes its mirrored embeddings."""
        doc = document_store.create_document("Doc", "text", "upload")
        other = document_store.create_document("Other", "text", "upload")
        for i, owner in enumerate([doc, doc, other]):
            document_store.add_embedding(EmbeddingRecord(
                id=f"e{i}", document_id=owner.id, chunk_text="t", chunk_index=i, embedding=[1.0, 0.5],
            ))

        assert document_store.delete_document(doc.id) is True
        assert document_store.delete_document(doc.id) is False
        assert [e.id for e in document_store.list_embeddings()] == ["e2"]
        assert [d.id for d in document_store.list_documents()] == [other.id]

    def test_embedding_vector_round_trip(self, document_store):
        doc = document_store.create_document("Doc", "text", "upload")
        vector = [0.125, -3.5, 1e-9]
        document_store.add_embedding(EmbeddingRecord(
            id="e1", document_id=doc.id, chunk_text="t", chunk_index=0, embedding=vector,
        ))

        assert document_store.list_embeddings()[0].embedding == vector


class TestConversationStore:
    """Tests for SqlConversationStore."""

    def test_messages_in_order_with_citations(self, conversation_store, chatbot_store):
        chatbot = chatbot_store.get_or_create_default()
        conversation = conversation_store.create_conversation(chatbot.id, "session-1", visitor_ip="198.51.100.2")

        conversation_store.append_message(conversation.id, "user", "What is your refund window?")
        conversation_store.append_message(
            conversation.id,
            "assistant",
            "30 days.",
            citations=[Citation(title="Policy", url=None)],
        )
        conversation_store.append_message(conversation.id, "assistant", "Partial", is_complete=False)

        messages = conversation_store.list_messages(conversation.id)
        assert [m.role for m in messages] == ["user", "assistant", "assistant"]
        assert messages[0].citations is None
        assert messages[1].citations == [Citation(title="Policy", url=None)]
        assert [m.is_complete for m in messages] == [True, True, False]

    def test_lookup_by_session(self, conversation_store, chatbot_store):
        chatbot = chatbot_store.get_or_create_default()
        created = conversation_store.create_conversation(chatbot.id, "session-2")

        assert conversation_store.get_conversation("session-2").id == created.id
        assert conversation_store.get_conversation("unknown") is None


class TestChatbotStore:
    """Tests for SqlChatbotStore."""

    def test_default_created_once(self, chatbot_store):
        """Test the default chatbot is created on first use and then reused."""
        first = chatbot_store.get_or_create_default()
        second = chatbot_store.get_or_create_default()

        assert first.id == second.id
        assert first.llm_model == "openai/gpt-5"
        assert first.temperature == pytest.approx(0.7)
        assert first.system_prompt == DEFAULT_SYSTEM_PROMPT
