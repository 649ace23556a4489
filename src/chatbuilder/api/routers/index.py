"""
Index Router

Vector index statistics and maintenance.
"""

import logging

from fastapi import APIRouter, Depends

from ..dependencies import get_index, get_ingestion_service
from ..schemas import IndexStatsResponse, RebuildResponse
from ...ingestion.ingest import IngestionService
from ...rag.vector_store import VectorIndex

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/index/stats", response_model=IndexStatsResponse)
async def index_stats(index: VectorIndex = Depends(get_index)):
    """
    Get vector index statistics.

    `last_persist_error` is set when the latest write to disk failed; the
    in-memory index keeps serving until the next successful write.
    """
    return IndexStatsResponse(
        vectors=index.count(),
        documents=len(index.document_ids()),
        dimension=index.dimension,
        storage_path=str(index.storage_path),
        last_persist_error=index.last_persist_error,
    )


@router.post("/index/rebuild", response_model=RebuildResponse)
async def rebuild_index(ingestion: IngestionService = Depends(get_ingestion_service)):
    """
    Rebuild the vector index from the embeddings stored in the database.

    Use after restoring a database backup or losing the index file.
    """
    count = await ingestion.rebuild_index()
    return RebuildResponse(success=True, vectors=count)
