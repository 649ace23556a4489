"""Unit tests for the chat orchestrator."""

import pytest

from chatbuilder.agent.prompts import CONTEXT_HEADER, build_context, get_system_prompt
from chatbuilder.exceptions import ValidationError
from chatbuilder.models.chat import ChatStage, ContentFrame, DoneFrame, ErrorFrame


async def _run(orchestrator, message, session_id=None):
    turn = orchestrator.start_turn(message, session_id=session_id, visitor_ip="203.0.113.7")
    frames = [frame async for frame in orchestrator.run_turn(turn)]
    return turn, frames


async def _index_policy(vector_index, document_store, embedder, url=None):
    """Store the one-chunk refund policy document and index it."""
    document = document_store.create_document(
        title="Policy",
        content="Our refund window is 30 days.",
        source_type="crawl" if url else "upload",
        source_url=url,
    )
    vector = await embedder.embed("Our refund window is 30 days.")
    vector_index.add("chunk-1", document.id, "Our refund window is 30 days.", 0, vector)
    return document


class TestPrompts:
    """Tests for prompt assembly."""

    def test_context_block(self):
        context = build_context([("Policy", "Refunds within 30 days."), ("FAQ", "Ships in 2 days.")])
        assert context == "[Policy] Refunds within 30 days.\n\n[FAQ] Ships in 2 days."

    def test_empty_context(self):
        assert build_context([]) == ""
        assert get_system_prompt("Be brief.", "") == "Be brief." + CONTEXT_HEADER


class TestStreamChat:
    """Tests for a full chat turn."""

    @pytest.mark.asyncio
    async def test_refund_question_cites_policy(
        self, orchestrator, vector_index, document_store, conversation_store, embedder, llm_client
    ):
        """Test an answer grounded on the policy chunk cites exactly that document."""
        await _index_policy(vector_index, document_store, embedder)

        turn, frames = await _run(orchestrator, "What is your refund window?")

        content = [f.content for f in frames if isinstance(f, ContentFrame)]
        assert "".join(content) == "Refunds are accepted within 30 days."
        assert isinstance(frames[-1], DoneFrame)
        assert frames[-1].session_id == turn.session_id
        assert turn.stage == ChatStage.DONE
        assert [c.model_dump() for c in turn.citations] == [{"title": "Policy", "url": None}]

        # Prompt: system prompt + context header + context, then user message verbatim
        sent = llm_client.calls[0]["messages"]
        assert [m.role for m in sent] == ["system", "user"]
        assert sent[0].content == (
            "You are a helpful AI assistant." + CONTEXT_HEADER + "[Policy] Our refund window is 30 days."
        )
        assert sent[1].content == "What is your refund window?"
        assert llm_client.calls[0]["model"] == "openai/gpt-5"
        assert llm_client.calls[0]["temperature"] == 0.7

        conversation = conversation_store.get_conversation(turn.session_id)
        assert conversation.visitor_ip == "203.0.113.7"
        messages = conversation_store.list_messages(conversation.id)
        assert [(m.role, m.is_complete) for m in messages] == [("user", True), ("assistant", True)]
        assert messages[1].content == "Refunds are accepted within 30 days."
        assert messages[1].citations[0].title == "Policy"

    @pytest.mark.asyncio
    async def test_citation_carries_source_url(self, orchestrator, vector_index, document_store, embedder):
        await _index_policy(vector_index, document_store, embedder, url="https://acme.test/refunds")

        turn, _ = await _run(orchestrator, "refund?")

        assert turn.citations[0].url == "https://acme.test/refunds"

    @pytest.mark.asyncio
    async def test_empty_knowledge_base(self, orchestrator, conversation_store, llm_client):
        """Test an empty index still calls the model with an empty context."""
        turn, frames = await _run(orchestrator, "Hello?")

        assert isinstance(frames[-1], DoneFrame)
        assert turn.citations == []
        assert llm_client.calls[0]["messages"][0].content == "You are a helpful AI assistant." + CONTEXT_HEADER

        conversation = conversation_store.get_conversation(turn.session_id)
        assistant = conversation_store.list_messages(conversation.id)[-1]
        assert assistant.citations == []

    @pytest.mark.asyncio
    async def test_deleted_document_cited_as_unknown(self, orchestrator, vector_index, embedder):
        """Test a chunk whose document is gone resolves to an Unknown citation."""
        vector_index.add("orphan", "deleted-doc", "refund details", 0, await embedder.embed("refund details"))

        turn, frames = await _run(orchestrator, "refund")

        assert isinstance(frames[-1], DoneFrame)
        assert [c.model_dump() for c in turn.citations] == [{"title": "Unknown", "url": None}]

    @pytest.mark.asyncio
    async def test_session_reused(self, orchestrator, conversation_store):
        """Test a second turn with the same session id joins the same conversation."""
        first, _ = await _run(orchestrator, "First question")
        second, _ = await _run(orchestrator, "Second question", session_id=first.session_id)

        assert second.session_id == first.session_id
        assert second.conversation_id == first.conversation_id
        assert len(conversation_store.list_messages(first.conversation_id)) == 4

    @pytest.mark.asyncio
    async def test_top_k_limits_context(self, orchestrator, vector_index, document_store, embedder, llm_client):
        doc = document_store.create_document(title="Many", content="x", source_type="upload")
        for i in range(5):
            vector_index.add(f"c{i}", doc.id, f"refund chunk {i}", i, await embedder.embed(f"refund chunk {i}"))

        turn, _ = await _run(orchestrator, "refund")

        assert len(turn.citations) == 3
        assert llm_client.calls[0]["messages"][0].content.count("[Many]") == 3

    def test_empty_message_rejected_synchronously(self, orchestrator, llm_client):
        """Test a blank message raises before any stream is created."""
        with pytest.raises(ValidationError):
            orchestrator.stream_chat("   ")
        assert llm_client.calls == []


class TestFailures:
    """Tests for failure handling during a turn."""

    @pytest.mark.asyncio
    async def test_embedding_failure(self, make_orchestrator, conversation_store):
        """Test an embedding failure ends the turn without calling the model."""
        orchestrator, llm_client = make_orchestrator(embed_fail_on=["refund"])

        turn, frames = await _run(orchestrator, "refund please")

        assert len(frames) == 1
        assert isinstance(frames[0], ErrorFrame)
        assert frames[0].session_id == turn.session_id
        assert turn.stage == ChatStage.FAILED
        assert llm_client.calls == []
        messages = conversation_store.list_messages(turn.conversation_id)
        assert [m.role for m in messages] == ["user"]

    @pytest.mark.asyncio
    async def test_provider_error_text_not_sent_to_visitor(self, make_orchestrator):
        """Test upstream error details stay in the log and the frame carries a generic message."""
        orchestrator, _ = make_orchestrator(llm_fail_after=0)

        turn, frames = await _run(orchestrator, "Hello")

        assert frames[-1].error == "Failed to process chat"
        assert "upstream" not in frames[-1].error
        assert turn.error == "Failed to process chat"

    @pytest.mark.asyncio
    async def test_dimension_mismatch_is_error_frame(self, orchestrator, vector_index, llm_client):
        vector_index.add("odd", "doc", "text", 0, [1.0, 2.0])

        turn, frames = await _run(orchestrator, "refund")

        assert isinstance(frames[-1], ErrorFrame)
        assert "dimension" in frames[-1].error
        assert llm_client.calls == []

    @pytest.mark.asyncio
    async def test_stream_fails_before_any_fragment(self, make_orchestrator, conversation_store):
        orchestrator, _ = make_orchestrator(llm_fail_after=0)

        turn, frames = await _run(orchestrator, "Hello")

        assert len(frames) == 1 and isinstance(frames[0], ErrorFrame)
        assert [m.role for m in conversation_store.list_messages(turn.conversation_id)] == ["user"]

    @pytest.mark.asyncio
    async def test_partial_stream_persisted_incomplete(
        self, make_orchestrator, vector_index, document_store, conversation_store, embedder
    ):
        """Test text streamed before a failure is stored with is_complete=False."""
        await _index_policy(vector_index, document_store, embedder)
        orchestrator, _ = make_orchestrator(llm_fail_after=2)

        turn, frames = await _run(orchestrator, "What is your refund window?")

        assert [type(f) for f in frames] == [ContentFrame, ContentFrame, ErrorFrame]
        assert turn.stage == ChatStage.FAILED
        messages = conversation_store.list_messages(turn.conversation_id)
        assistant = messages[-1]
        assert assistant.role == "assistant"
        assert assistant.content == "Refunds are accepted within "
        assert assistant.is_complete is False
        assert assistant.citations[0].title == "Policy"

    @pytest.mark.asyncio
    async def test_consumer_cancel_closes_stream(self, orchestrator, conversation_store, llm_client):
        """Test closing the frame iterator stops generation and stores no answer."""
        turn = orchestrator.start_turn("Hello")
        frames = orchestrator.run_turn(turn)

        first = await frames.__anext__()
        assert isinstance(first, ContentFrame)
        await frames.aclose()

        assert llm_client.closed
        assert [m.role for m in conversation_store.list_messages(turn.conversation_id)] == ["user"]


class TestAnswer:
    """Tests for the non-streaming path."""

    @pytest.mark.asyncio
    async def test_answer(self, orchestrator, vector_index, document_store, embedder):
        await _index_policy(vector_index, document_store, embedder)

        turn = await orchestrator.answer("What is your refund window?")

        assert turn.stage == ChatStage.DONE
        assert turn.answer == "Refunds are accepted within 30 days."
        assert turn.citations[0].title == "Policy"

    @pytest.mark.asyncio
    async def test_answer_failure(self, make_orchestrator):
        orchestrator, _ = make_orchestrator(llm_fail_after=0)

        turn = await orchestrator.answer("Hello")

        assert turn.stage == ChatStage.FAILED
        assert turn.error
