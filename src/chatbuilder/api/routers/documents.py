"""
Documents Router

Knowledge-base management: list, upload, crawled-page ingestion and deletion.
"""

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from ..dependencies import get_document_store, get_ingestion_service
from ..schemas import (
    CrawledPagesRequest,
    DeleteResponse,
    DocumentResponse,
    IngestionReportResponse,
    IngestionResponse,
)
from ...db.repositories import DocumentStore
from ...ingestion.ingest import IngestionReport, IngestionService, summarize_reports

logger = logging.getLogger(__name__)

router = APIRouter()


def _ingestion_response(reports: List[IngestionReport]) -> IngestionResponse:
    indexed, failed = summarize_reports(reports)
    return IngestionResponse(
        success=all(r.complete for r in reports),
        documents=[IngestionReportResponse(**r.model_dump()) for r in reports],
        chunks_indexed=indexed,
        chunks_failed=failed,
    )


@router.get("/documents", response_model=List[DocumentResponse])
async def list_documents(documents: DocumentStore = Depends(get_document_store)):
    """
    List knowledge-base documents, newest first.
    """
    rows = await asyncio.to_thread(documents.list_documents)
    return [
        DocumentResponse(
            id=d.id,
            title=d.title,
            source_type=d.source_type,
            source_url=d.source_url,
            content_length=len(d.content),
            created_at=d.created_at,
        )
        for d in rows
    ]


@router.post("/documents/upload", response_model=IngestionResponse)
async def upload_documents(
    files: List[UploadFile] = File(..., description="Plain-text files (text/*)"),
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    """
    Upload text files into the knowledge base.

    Each file becomes one document titled by its filename, chunked and
    embedded. Chunks that fail to embed are reported per document. A batch
    containing a non-text file is rejected with 400 before anything is stored.
    """
    uploads = []
    for upload in files:
        data = await upload.read()
        logger.info(f"Upload: {upload.filename} ({upload.content_type}, {len(data)} bytes)")
        uploads.append((upload.filename, upload.content_type, data))

    reports = await ingestion.ingest_uploads(uploads)
    return _ingestion_response(reports)


@router.post("/documents/pages", response_model=IngestionResponse)
async def ingest_pages(
    request: CrawledPagesRequest,
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    """
    Ingest pages produced by a crawler.

    Every page needs an absolute http(s) URL; the request is rejected with 400
    before anything is stored if one is malformed.
    """
    logger.info(f"Ingesting {len(request.pages)} crawled pages")
    reports = await ingestion.ingest_pages(request.pages)
    return _ingestion_response(reports)


@router.delete("/documents/{document_id}", response_model=DeleteResponse)
async def delete_document(
    document_id: str,
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    """
    Delete a document and remove its chunks from the vector index.
    """
    deleted = await ingestion.delete_document(document_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document not found: {document_id}"
        )
    return DeleteResponse(success=True, document_id=document_id)
