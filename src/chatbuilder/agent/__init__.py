"""
Agent module for the chatbot.

Provides the LLM completion client and the retrieval-augmented chat orchestrator.
"""

from .llm_config import ChatMessage, LLMClient, LLMSettings, get_llm_client
from .orchestrator import ChatOrchestrator, ChatTurn
from .prompts import build_chat_messages, build_context, get_system_prompt

__all__ = [
    "ChatMessage",
    "LLMClient",
    "LLMSettings",
    "get_llm_client",
    "ChatOrchestrator",
    "ChatTurn",
    "build_chat_messages",
    "build_context",
    "get_system_prompt",
]
