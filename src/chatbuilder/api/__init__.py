"""
FastAPI Application Module

Provides the REST API for the ChatBuilder RAG chatbot.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
