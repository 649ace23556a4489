"""
ChatBuilder - retrieval-augmented chatbot backend.

Ingests documents and crawled pages into a local vector index and answers
visitor questions with a streamed, citation-backed LLM response.
"""

__version__ = "0.1.0"
