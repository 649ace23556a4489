"""Unit tests for the embedding backends."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np
import pytest

from chatbuilder.exceptions import EmbeddingError, ValidationError
from chatbuilder.rag.config import RAGConfig
from chatbuilder.rag.embedding_service import (
    EmbeddingService,
    LiteLLMEmbeddingService,
    SentenceTransformerEmbeddingService,
    get_embedding_service,
    parse_embedding_response,
)


@pytest.fixture
def remote_config():
    return RAGConfig(
        embedding_backend="remote",
        embedding_model="text-embedding-3-large",
        embedding_api_key="sk-test",
        embedding_num_retries=3,
        index_path="unused.json",
    )


class TestParseEmbeddingResponse:
    """Tests for parse_embedding_response."""

    def test_dict_payload(self):
        result = parse_embedding_response({
            "data": [{"embedding": [0.1, 0.2, 0.3]}],
            "model": "text-embedding-3-large",
            "usage": {"total_tokens": 5},
        })
        assert result.embedding == [0.1, 0.2, 0.3]
        assert result.total_tokens == 5

    def test_attribute_payload(self):
        """Test SDK-style objects are read through attributes."""
        response = SimpleNamespace(
            data=[SimpleNamespace(embedding=[1.0, 2.0])],
            model="m",
            usage=None,
        )
        assert parse_embedding_response(response).embedding == [1.0, 2.0]

    @pytest.mark.parametrize("payload", [
        {},
        {"data": []},
        {"data": [{"embedding": None}]},
        {"data": [{"embedding": []}]},
        {"data": [{"embedding": ["a", "b"]}]},
        {"data": [{"embedding": [1.0, float("nan")]}]},
    ])
    def test_malformed_payloads(self, payload):
        """Test malformed payloads raise EmbeddingError."""
        with pytest.raises(EmbeddingError):
            parse_embedding_response(payload)


class TestEmbeddingServiceBase:
    """Tests for the backend base class."""

    def test_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            EmbeddingService()

    @pytest.mark.asyncio
    async def test_subclass_gets_validation(self):
        class Fixed(EmbeddingService):
            model_name = "fixed"

            async def _embed(self, text):
                return [1.0, 0.0]

        assert await Fixed().embed("hello") == [1.0, 0.0]
        with pytest.raises(ValidationError):
            await Fixed().embed("  ")


class TestLiteLLMEmbeddingService:
    """Tests for the remote backend."""

    @pytest.mark.asyncio
    async def test_embed_calls_litellm(self, remote_config):
        """Test the request parameters and the returned vector."""
        mock_embed = AsyncMock(return_value={"data": [{"embedding": [0.5, 0.25]}]})
        service = LiteLLMEmbeddingService(remote_config)

        with patch("litellm.aembedding", mock_embed):
            vector = await service.embed("What is your refund window?")

        assert vector == [0.5, 0.25]
        kwargs = mock_embed.call_args.kwargs
        assert kwargs["model"] == "text-embedding-3-large"
        assert kwargs["input"] == ["What is your refund window?"]
        assert kwargs["num_retries"] == 3
        assert kwargs["api_key"] == "sk-test"
        assert "dimensions" not in kwargs

    @pytest.mark.asyncio
    async def test_dimensions_forwarded(self, remote_config):
        remote_config.embedding_dimension = 256
        mock_embed = AsyncMock(return_value={"data": [{"embedding": [1.0]}]})

        with patch("litellm.aembedding", mock_embed):
            await LiteLLMEmbeddingService(remote_config).embed("text")

        assert mock_embed.call_args.kwargs["dimensions"] == 256

    @pytest.mark.asyncio
    async def test_upstream_error(self, remote_config):
        """Test provider exceptions become EmbeddingError."""
        mock_embed = AsyncMock(side_effect=RuntimeError("429 rate limited"))

        with patch("litellm.aembedding", mock_embed):
            with pytest.raises(EmbeddingError, match="rate limited"):
                await LiteLLMEmbeddingService(remote_config).embed("text")

    @pytest.mark.asyncio
    async def test_empty_text_rejected_before_call(self, remote_config):
        mock_embed = AsyncMock()

        with patch("litellm.aembedding", mock_embed):
            with pytest.raises(ValidationError):
                await LiteLLMEmbeddingService(remote_config).embed("   ")

        mock_embed.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_caching(self, remote_config):
        """Test identical text is embedded again on every call."""
        mock_embed = AsyncMock(return_value={"data": [{"embedding": [1.0]}]})
        service = LiteLLMEmbeddingService(remote_config)

        with patch("litellm.aembedding", mock_embed):
            await service.embed("same text")
            await service.get_query_embedding("same text")

        assert mock_embed.call_count == 2


class TestSentenceTransformerEmbeddingService:
    """Tests for the local backend with a preloaded model."""

    @pytest.mark.asyncio
    async def test_encode(self):
        model = MagicMock()
        model.encode.return_value = np.array([0.1, 0.2, 0.3], dtype=np.float32)
        config = RAGConfig(embedding_backend="local", embedding_model="all-MiniLM-L6-v2", index_path="unused.json")

        vector = await SentenceTransformerEmbeddingService(config, model=model).embed("hello")

        assert vector == pytest.approx([0.1, 0.2, 0.3])
        model.encode.assert_called_once()

    @pytest.mark.asyncio
    async def test_encode_failure(self):
        model = MagicMock()
        model.encode.side_effect = RuntimeError("CUDA out of memory")
        config = RAGConfig(embedding_backend="local", index_path="unused.json")

        with pytest.raises(EmbeddingError):
            await SentenceTransformerEmbeddingService(config, model=model).embed("hello")


class TestGetEmbeddingService:
    """Tests for backend selection."""

    def test_remote_default(self, remote_config):
        assert isinstance(get_embedding_service(remote_config), LiteLLMEmbeddingService)

    def test_local_backend(self):
        config = RAGConfig(embedding_backend="local", index_path="unused.json")
        with patch("sentence_transformers.SentenceTransformer") as mock_st:
            service = get_embedding_service(config)

        assert isinstance(service, SentenceTransformerEmbeddingService)
        mock_st.assert_called_once_with(config.embedding_model, device="cpu")
