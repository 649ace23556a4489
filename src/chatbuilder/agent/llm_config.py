"""
LiteLLM Completion Client

Unified interface to chat-completion providers using LiteLLM. The default
provider is OpenRouter, whose model ids look like "openai/gpt-5" and are
addressed through LiteLLM as "openrouter/openai/gpt-5".

Environment variables:
- LLM_PROVIDER: LiteLLM provider prefix (default: "openrouter"; empty for none)
- LLM_MODEL: Default model id when a chatbot does not configure one
- LLM_API_KEY / OPENROUTER_API_KEY: API key for the provider
- LLM_BASE_URL: (Optional) Custom base URL for self-hosted or proxy endpoints
- LLM_TEMPERATURE: (Optional) Default temperature (default: 0.7)
- LLM_STREAM_IDLE_TIMEOUT: (Optional) Seconds to wait for the next streamed chunk
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Literal, Optional, Sequence

import litellm
from litellm import acompletion
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from ..exceptions import CompletionError

logger = logging.getLogger(__name__)


class LLMSettings(BaseSettings):
    """LLM configuration settings"""

    # Provider and model
    llm_provider: str = Field(default="openrouter", description="LiteLLM provider prefix")
    llm_model: str = Field(default="openai/gpt-5", description="Default model identifier")

    # API credentials
    llm_api_key: Optional[str] = Field(default=None, description="API key for LLM provider")
    openrouter_api_key: Optional[str] = Field(default=None, description="OpenRouter API key")

    # Optional configuration
    llm_base_url: Optional[str] = Field(default=None, description="Custom base URL")
    llm_max_tokens: Optional[int] = Field(default=None, description="Max tokens for completion")
    llm_temperature: float = Field(default=0.7, description="Default temperature")
    llm_timeout: int = Field(default=60, description="Request timeout in seconds")
    llm_stream_idle_timeout: float = Field(
        default=30.0,
        description="Seconds without a streamed chunk before the stream is abandoned"
    )
    llm_num_retries: int = Field(
        default=2,
        description="Retries with exponential backoff on rate limits and 5xx"
    )

    # Attribution headers sent to OpenRouter
    llm_app_url: str = Field(default="http://localhost:8000", description="HTTP-Referer header")
    llm_app_title: str = Field(default="ChatBuilder", description="X-Title header")

    # LiteLLM specific settings
    litellm_log_level: str = Field(default="ERROR", description="LiteLLM log level")
    litellm_drop_params: bool = Field(
        default=True,
        description="Drop unsupported params for each provider"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields from .env


class ChatMessage(BaseModel):
    """Single message sent to the model"""

    role: Literal["system", "user", "assistant"]
    content: str


class StreamDelta(BaseModel):
    """Incremental piece of a streamed completion"""

    content: Optional[str] = None
    finish_reason: Optional[str] = None


class CompletionResult(BaseModel):
    """Full (non-streamed) completion"""

    content: str
    model: Optional[str] = None
    finish_reason: Optional[str] = None


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def parse_stream_chunk(chunk: Any) -> StreamDelta:
    """
    Parse one streamed chunk (`choices[0].delta.content`).

    Chunks without choices (e.g. trailing usage frames) yield an empty delta.

    Raises:
        CompletionError: If the chunk carries a non-string content delta
    """
    choices = _field(chunk, "choices")
    if not choices:
        return StreamDelta()

    choice = choices[0]
    delta = _field(choice, "delta")
    try:
        return StreamDelta(
            content=_field(delta, "content") if delta is not None else None,
            finish_reason=_field(choice, "finish_reason"),
        )
    except ValueError as e:
        raise CompletionError(f"Malformed stream frame: {e}") from e


def parse_completion_response(response: Any) -> CompletionResult:
    """
    Parse a blocking completion response (`choices[0].message.content`).

    Raises:
        CompletionError: If the response has no message content
    """
    choices = _field(response, "choices")
    if not choices:
        raise CompletionError("Completion response contained no choices")

    message = _field(choices[0], "message")
    content = _field(message, "content") if message is not None else None
    if content is None:
        raise CompletionError("Completion response contained no message content")

    try:
        return CompletionResult(
            content=content,
            model=_field(response, "model"),
            finish_reason=_field(choices[0], "finish_reason"),
        )
    except ValueError as e:
        raise CompletionError(f"Malformed completion response: {e}") from e


class LLMClient:
    """
    Chat completion client using LiteLLM.

    Supports token streaming and blocking completions.
    """

    def __init__(self, settings: Optional[LLMSettings] = None):
        """
        Initialize LLM client.

        Args:
            settings: LLM settings (defaults to loading from environment)
        """
        self.settings = settings or LLMSettings()

        # Configure LiteLLM
        litellm.drop_params = self.settings.litellm_drop_params
        litellm.set_verbose = self.settings.litellm_log_level == "DEBUG"

        self.api_key = self.settings.openrouter_api_key or self.settings.llm_api_key

    def build_model_string(self, model: Optional[str] = None) -> str:
        """
        Build LiteLLM model string.

        Format: "provider/model" unless the model already carries the prefix.

        Examples:
        - "openai/gpt-5" -> "openrouter/openai/gpt-5"
        - "openrouter/anthropic/claude-3.5-sonnet" (unchanged)
        """
        model = model or self.settings.llm_model
        provider = self.settings.llm_provider.strip().lower()

        if not provider or model.startswith(f"{provider}/"):
            return model
        return f"{provider}/{model}"

    def _build_params(
        self,
        messages: Sequence[ChatMessage],
        model: Optional[str],
        temperature: Optional[float],
        stream: bool,
    ) -> Dict[str, Any]:
        params = {
            "model": self.build_model_string(model),
            "messages": [m.model_dump() for m in messages],
            "temperature": self.settings.llm_temperature if temperature is None else temperature,
            "timeout": self.settings.llm_timeout,
            "num_retries": self.settings.llm_num_retries,
            "stream": stream,
        }

        if self.settings.llm_max_tokens:
            params["max_tokens"] = self.settings.llm_max_tokens
        if self.api_key:
            params["api_key"] = self.api_key
        if self.settings.llm_base_url:
            params["api_base"] = self.settings.llm_base_url
        if self.settings.llm_provider.lower() == "openrouter":
            params["extra_headers"] = {
                "HTTP-Referer": self.settings.llm_app_url,
                "X-Title": self.settings.llm_app_title,
            }

        return params

    async def stream_completion(
        self,
        messages: Sequence[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """
        Stream a completion as text fragments.

        The iterator is finite and not restartable. Text already yielded is not
        retracted if the stream later fails.

        Args:
            messages: Conversation to send
            model: Model id (defaults to LLM_MODEL)
            temperature: Sampling temperature (defaults to LLM_TEMPERATURE)

        Yields:
            Non-empty content deltas in arrival order

        Raises:
            CompletionError: On upstream failure, malformed frames, or an idle
                gap longer than llm_stream_idle_timeout
        """
        params = self._build_params(messages, model, temperature, stream=True)
        logger.info(f"Streaming completion from {params['model']} ({len(messages)} messages)")

        try:
            response = await acompletion(**params)
        except Exception as e:
            logger.error(f"Error starting completion stream: {e}")
            raise CompletionError(f"Failed to stream chat completion: {e}") from e

        chunks = response.__aiter__()
        idle_timeout = self.settings.llm_stream_idle_timeout
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(chunks.__anext__(), timeout=idle_timeout)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError as e:
                    logger.error(f"Completion stream idle for {idle_timeout}s, aborting")
                    raise CompletionError(
                        f"Completion stream stalled (no data for {idle_timeout}s)"
                    ) from e
                except Exception as e:
                    logger.error(f"Error streaming chat completion: {e}")
                    raise CompletionError(f"Failed to stream chat completion: {e}") from e

                delta = parse_stream_chunk(chunk)
                if delta.content:
                    yield delta.content
        finally:
            close = getattr(chunks, "aclose", None)
            if close is not None:
                try:
                    await close()
                except Exception as e:
                    logger.debug(f"Ignoring error while closing upstream stream: {e}")

    async def get_completion(
        self,
        messages: Sequence[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Get a full completion without streaming.

        Raises:
            CompletionError: On upstream failure or a malformed response
        """
        params = self._build_params(messages, model, temperature, stream=False)

        try:
            response = await acompletion(**params)
        except Exception as e:
            logger.error(f"Error getting chat completion: {e}")
            raise CompletionError(f"Failed to get chat completion: {e}") from e

        return parse_completion_response(response).content


def get_llm_client(settings: Optional[LLMSettings] = None) -> LLMClient:
    """
    Create an LLM client.

    Args:
        settings: Optional settings (loads from environment if omitted)

    Returns:
        LLM client instance
    """
    return LLMClient(settings)
