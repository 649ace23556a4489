"""Pydantic models for knowledge-base documents."""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

SourceType = Literal["upload", "crawl", "exa"]


class Document(BaseModel):
    """
    A document in a company's knowledge base.

    Created on upload or crawl; deleting it removes its chunks from the
    relational mirror and the vector index.
    """

    id: str = Field(..., description="Document id (uuid)")
    company_id: Optional[str] = Field(None, description="Owning company (tenant)")
    title: str = Field(..., description="Display title used in citations")
    content: str = Field(..., description="Full extracted text")
    source_type: SourceType = Field(..., description="How the document entered the knowledge base")
    source_url: Optional[str] = Field(None, description="Page URL for crawled documents")
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Citation(BaseModel):
    """Reference to a document that grounded an answer."""

    title: str
    url: Optional[str] = None


class CrawledPage(BaseModel):
    """Plain-text page produced by an external crawler."""

    url: str = Field(..., description="Page URL")
    title: str = Field(..., min_length=1, description="Page title")
    content: str = Field(..., description="Extracted page text")
