"""
Knowledge-base ingestion.

Write path for the RAG pipeline:
    Document -> TextChunker -> EmbeddingService -> VectorIndex + relational mirror

Every chunk is embedded on its own. A chunk whose embedding or storage fails
is counted in the IngestionReport; the rest of the document is still indexed.

Index mutations serialize and fsync the whole index file, so they run in a
worker thread like the SQL calls.
"""

import asyncio
import logging
import os
import time
import uuid
from typing import List, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from ..db.repositories import DocumentStore
from ..exceptions import ChatBuilderError, IndexPersistenceError, StoreError, ValidationError
from ..models.document import CrawledPage
from ..rag.chunker import TextChunk, TextChunker
from ..rag.config import RAGConfig
from ..rag.embedding_service import EmbeddingService
from ..rag.vector_store import VectorIndex

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {".txt", ".md", ".markdown", ".csv", ".text"}


class IngestionReport(BaseModel):
    """Outcome of ingesting one document."""

    document_id: str = Field(..., description="Id of the stored document")
    title: str = Field(..., description="Document title")
    chunks_total: int = Field(..., ge=0, description="Chunks produced by the chunker")
    chunks_indexed: int = Field(..., ge=0, description="Chunks embedded and indexed")
    failed_chunks: List[int] = Field(default_factory=list, description="Indexes of chunks that failed")
    errors: List[str] = Field(default_factory=list, description="One message per failed chunk")

    @property
    def complete(self) -> bool:
        return self.chunks_indexed == self.chunks_total


def validate_source_url(url: str) -> str:
    """
    Check that a crawled page URL is an absolute http(s) URL.

    Raises:
        ValidationError: If the URL is malformed
    """
    parsed = urlparse(url.strip()) if url else None
    if parsed is None or parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"Invalid source URL: {url!r}")
    return url.strip()


def decode_text_upload(filename: str, content_type: Optional[str], data: bytes) -> str:
    """
    Extract text from an uploaded file.

    Only plain-text formats are accepted (a text/* content type, or a known
    text extension when the client sent no useful content type).

    Raises:
        ValidationError: If the file is not text or not valid UTF-8
    """
    extension = os.path.splitext(filename or "")[1].lower()
    is_text = (content_type or "").startswith("text/") or extension in TEXT_EXTENSIONS
    if not is_text:
        raise ValidationError(f"Unsupported file type for {filename}: {content_type}")

    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ValidationError(f"{filename} is not valid UTF-8: {e}") from e


class IngestionService:
    """
    Indexes documents into the vector index and the relational mirror.

    Example:
        service = IngestionService(embedder, index, documents, config)
        report = await service.ingest_document("Refund Policy", text, "upload")
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        index: VectorIndex,
        documents: DocumentStore,
        config: RAGConfig,
    ):
        self.embedding_service = embedding_service
        self.index = index
        self.documents = documents
        self.config = config
        self.chunker = TextChunker(config)
        self.concurrency = config.embedding_concurrency

    async def ingest_document(
        self,
        title: str,
        content: str,
        source_type: str,
        source_url: Optional[str] = None,
        company_id: Optional[str] = None,
    ) -> IngestionReport:
        """
        Store a document and index its chunks.

        Args:
            title: Document title (used in citations)
            content: Full document text
            source_type: "upload", "crawl" or "exa"
            source_url: Page URL for crawled documents
            company_id: Owning company

        Returns:
            IngestionReport with per-chunk failures
        """
        if not title or not title.strip():
            raise ValidationError("Document title is required")

        start_time = time.time()
        document = await asyncio.to_thread(
            self.documents.create_document,
            title,
            content,
            source_type,
            source_url,
            company_id,
        )

        chunks = self.chunker.chunk_document(content, document.id)
        logger.info(f"Ingesting '{title}': {len(chunks)} chunks")

        vectors = await self._embed_chunks(chunks)

        report = IngestionReport(
            document_id=document.id,
            title=document.title,
            chunks_total=len(chunks),
            chunks_indexed=0,
        )

        # Insert in chunk order regardless of how embedding was scheduled
        for chunk, outcome in zip(chunks, vectors):
            if isinstance(outcome, Exception):
                self._record_failure(report, chunk, outcome)
                continue
            try:
                await self._index_chunk(chunk, outcome)
            except ChatBuilderError as e:
                self._record_failure(report, chunk, e)
                continue
            report.chunks_indexed += 1

        elapsed = time.time() - start_time
        logger.info(
            f"Ingested '{title}' ({document.id}): "
            f"{report.chunks_indexed}/{report.chunks_total} chunks in {elapsed:.2f}s"
        )
        return report

    async def ingest_upload(
        self,
        filename: str,
        content_type: Optional[str],
        data: bytes,
        company_id: Optional[str] = None,
    ) -> IngestionReport:
        """Ingest an uploaded text file, titled by its filename."""
        content = decode_text_upload(filename, content_type, data)
        return await self.ingest_document(
            title=filename,
            content=content,
            source_type="upload",
            company_id=company_id,
        )

    async def ingest_uploads(
        self,
        uploads: Sequence[Tuple[str, Optional[str], bytes]],
        company_id: Optional[str] = None,
    ) -> List[IngestionReport]:
        """
        Ingest a batch of uploaded files.

        Every file is decoded before anything is stored, so one rejected
        file leaves the knowledge base untouched.

        Args:
            uploads: (filename, content type, raw bytes) per file

        Raises:
            ValidationError: If any file is not UTF-8 text
        """
        decoded = [
            (filename, decode_text_upload(filename, content_type, data))
            for filename, content_type, data in uploads
        ]

        reports = []
        for filename, content in decoded:
            reports.append(
                await self.ingest_document(
                    title=filename,
                    content=content,
                    source_type="upload",
                    company_id=company_id,
                )
            )
        return reports

    async def ingest_pages(
        self,
        pages: Sequence[CrawledPage],
        company_id: Optional[str] = None,
    ) -> List[IngestionReport]:
        """
        Ingest crawled pages.

        All URLs are validated before anything is stored.

        Raises:
            ValidationError: If any page URL is malformed
        """
        urls = [validate_source_url(page.url) for page in pages]

        reports = []
        for page, url in zip(pages, urls):
            reports.append(
                await self.ingest_document(
                    title=page.title,
                    content=page.content,
                    source_type="crawl",
                    source_url=url,
                    company_id=company_id,
                )
            )
        return reports

    async def delete_document(self, document_id: str) -> bool:
        """
        Remove a document from the index and the relational store.

        Returns:
            False if the document did not exist
        """
        removed = await asyncio.to_thread(self.index.delete_by_document_id, document_id)
        deleted = await asyncio.to_thread(self.documents.delete_document, document_id)
        if deleted or removed:
            logger.info(f"Deleted document {document_id} ({removed} vectors)")
        return deleted

    async def rebuild_index(self) -> int:
        """
        Reload the vector index from the relational mirror.

        Returns:
            Number of records in the rebuilt index

        Raises:
            IndexPersistenceError: If the rebuilt index could not be written
        """
        records = await asyncio.to_thread(self.documents.list_embeddings)
        count = await asyncio.to_thread(self.index.replace_all, records)
        if self.index.last_persist_error:
            raise IndexPersistenceError(
                f"Index rebuilt in memory but not saved: {self.index.last_persist_error}"
            )
        logger.info(f"Rebuilt vector index with {count} records")
        return count

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _embed_chunks(
        self, chunks: List[TextChunk]
    ) -> List[Union[List[float], Exception]]:
        """Embed every chunk, returning a vector or the error per chunk."""
        if self.concurrency <= 1:
            return [await self._embed_one(chunk) for chunk in chunks]

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(chunk: TextChunk):
            async with semaphore:
                return await self._embed_one(chunk)

        return list(await asyncio.gather(*(bounded(c) for c in chunks)))

    async def _embed_one(self, chunk: TextChunk) -> Union[List[float], Exception]:
        try:
            return await self.embedding_service.embed(chunk.text)
        except ChatBuilderError as e:
            return e

    async def _index_chunk(self, chunk: TextChunk, vector: List[float]) -> None:
        """
        Add a chunk to the index and the relational mirror.

        The index add validates the vector first; if the mirror write then
        fails, the record is taken back out of the index.

        Raises:
            ValidationError: If the vector does not fit the index
            StoreError: If the mirror row could not be written
        """
        record = await asyncio.to_thread(
            self.index.add,
            str(uuid.uuid4()),
            chunk.document_id,
            chunk.text,
            chunk.chunk_index,
            vector,
        )
        try:
            await asyncio.to_thread(self.documents.add_embedding, record)
        except SQLAlchemyError as e:
            await asyncio.to_thread(self.index.remove, record.id)
            raise StoreError(f"Could not store embedding row: {e}") from e

    def _record_failure(self, report: IngestionReport, chunk: TextChunk, error: Exception) -> None:
        logger.warning(
            f"Chunk {chunk.chunk_index + 1}/{chunk.total_chunks} of "
            f"document {chunk.document_id} not indexed: {error}"
        )
        report.failed_chunks.append(chunk.chunk_index)
        report.errors.append(f"chunk {chunk.chunk_index}: {error}")


def summarize_reports(reports: Sequence[IngestionReport]) -> Tuple[int, int]:
    """Total (indexed, failed) chunk counts across reports."""
    indexed = sum(r.chunks_indexed for r in reports)
    failed = sum(len(r.failed_chunks) for r in reports)
    return indexed, failed
