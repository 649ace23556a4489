"""
Prompt assembly for grounded chat answers.

Each turn is grounded on its own: the system message carries the chatbot's
prompt plus the retrieved context, followed by the visitor's message verbatim.
"""

from typing import List, Sequence, Tuple

from .llm_config import ChatMessage

CONTEXT_HEADER = "\n\nContext from knowledge base:\n"


def build_context(chunks: Sequence[Tuple[str, str]]) -> str:
    """
    Build the context block from retrieved chunks.

    Args:
        chunks: (document title, chunk text) pairs in retrieval rank order

    Returns:
        "[title] text" blocks separated by blank lines ("" when nothing was retrieved)
    """
    return "\n\n".join(f"[{title}] {text}" for title, text in chunks)


def get_system_prompt(base_prompt: str, context: str) -> str:
    """Append the knowledge-base context to the chatbot's system prompt."""
    return f"{base_prompt}{CONTEXT_HEADER}{context}"


def build_chat_messages(base_prompt: str, context: str, user_message: str) -> List[ChatMessage]:
    """Messages sent to the model for one turn."""
    return [
        ChatMessage(role="system", content=get_system_prompt(base_prompt, context)),
        ChatMessage(role="user", content=user_message),
    ]
