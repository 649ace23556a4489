"""Knowledge-base ingestion: uploaded files and crawled pages into the vector index."""

from .ingest import (
    IngestionReport,
    IngestionService,
    decode_text_upload,
    summarize_reports,
    validate_source_url,
)

__all__ = [
    "IngestionReport",
    "IngestionService",
    "decode_text_upload",
    "summarize_reports",
    "validate_source_url",
]
