"""
Ingest Documents from a Folder

Chunks, embeds and indexes every plain-text file in a folder, the same way
the upload endpoint does.

Usage:
    python scripts/ingest_documents.py --folder docs/
    python scripts/ingest_documents.py --folder docs/ --pattern "*.md"
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from chatbuilder.api.dependencies import build_services
from chatbuilder.exceptions import ValidationError
from chatbuilder.ingestion import summarize_reports

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run(folder: Path, pattern: str) -> int:
    services = build_services()

    files = sorted(p for p in folder.glob(pattern) if p.is_file())
    if not files:
        logger.warning(f"No files matching {pattern} in {folder}")
        return 0

    reports = []
    for path in files:
        try:
            report = await services.ingestion.ingest_upload(path.name, None, path.read_bytes())
        except ValidationError as e:
            logger.warning(f"Skipping {path.name}: {e}")
            continue
        reports.append(report)
        for error in report.errors:
            logger.warning(f"  {path.name}: {error}")

    indexed, failed = summarize_reports(reports)
    logger.info("=" * 60)
    logger.info(f"Documents ingested: {len(reports)}/{len(files)}")
    logger.info(f"Chunks indexed:     {indexed}")
    logger.info(f"Chunks failed:      {failed}")
    logger.info(f"Index size:         {services.index.count()} vectors")
    logger.info("=" * 60)

    return 1 if failed else 0


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(description="Ingest text files into the knowledge base")
    parser.add_argument("--folder", type=Path, required=True, help="Folder containing text files")
    parser.add_argument("--pattern", default="*.txt", help="Glob pattern (default: *.txt)")
    args = parser.parse_args()

    if not args.folder.exists():
        print(f"Error: Folder not found: {args.folder}", file=sys.stderr)
        sys.exit(1)

    sys.exit(asyncio.run(run(args.folder, args.pattern)))


if __name__ == "__main__":
    main()
