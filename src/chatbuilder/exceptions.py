"""
Error taxonomy for the RAG pipeline.

Each upstream boundary (embedding provider, completion provider, index file)
raises its own error type so callers can decide whether to abort, retry or
keep serving.
"""


class ChatBuilderError(Exception):
    """Base class for all ChatBuilder errors."""


class EmbeddingError(ChatBuilderError):
    """Upstream embedding call failed or returned a malformed payload."""


class CompletionError(ChatBuilderError):
    """Upstream chat completion failed, stalled, or sent a malformed frame."""


class IndexPersistenceError(ChatBuilderError):
    """The vector index snapshot could not be written to disk."""


class StoreError(ChatBuilderError):
    """A relational store write failed."""


class ValidationError(ChatBuilderError, ValueError):
    """
    Input rejected before any external call.

    Raised for empty messages, malformed URLs and vector dimension mismatches.
    Subclasses ValueError so the API maps it to a 400 response.
    """
