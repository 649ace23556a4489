"""
Rebuild the Vector Index

Reloads the local vector index file from the embeddings mirrored in the
database. Run after losing or corrupting the index file, or after restoring
a database backup.

Usage:
    # Rebuild from DATABASE_URL into RAG_INDEX_PATH
    python scripts/rebuild_index.py

    # Only show statistics
    python scripts/rebuild_index.py --stats-only

    # Write to a different index file
    python scripts/rebuild_index.py --index-path data/vectors.rebuilt.json
"""

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from chatbuilder.api.dependencies import build_services
from chatbuilder.exceptions import IndexPersistenceError
from chatbuilder.rag.config import RAGConfig

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run(args: argparse.Namespace) -> int:
    overrides = {"index_path": args.index_path} if args.index_path else {}
    services = build_services(rag_config=RAGConfig(**overrides), database_url=args.database_url)
    index = services.index

    mirrored = await asyncio.to_thread(services.documents.list_embeddings)
    documents = await asyncio.to_thread(services.documents.list_documents)

    logger.info("=" * 60)
    logger.info("VECTOR INDEX")
    logger.info("=" * 60)
    logger.info(f"Index file:          {index.storage_path}")
    logger.info(f"Vectors in index:    {index.count()}")
    logger.info(f"Vectors in database: {len(mirrored)}")
    logger.info(f"Documents:           {len(documents)}")
    logger.info("=" * 60)

    if args.stats_only:
        return 0

    try:
        count = await services.ingestion.rebuild_index()
    except IndexPersistenceError as e:
        logger.error(str(e))
        return 1

    logger.info(f"Rebuilt index with {count} vectors (dimension: {index.dimension})")
    return 0


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(description="Rebuild the vector index from the database")
    parser.add_argument("--database-url", help="Database URL (defaults to DATABASE_URL)")
    parser.add_argument("--index-path", help="Index file (defaults to RAG_INDEX_PATH)")
    parser.add_argument("--stats-only", action="store_true", help="Only show statistics")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
