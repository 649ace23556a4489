"""
Run the ChatBuilder API with uvicorn.

Usage:
    # Development server with auto-reload on PORT (default 8000)
    python scripts/start_api.py --reload

    # Bind a specific interface and port
    python scripts/start_api.py --host 127.0.0.1 --port 9000
"""

import argparse
import logging
import os

import uvicorn
from dotenv import load_dotenv

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(description="Serve the RAG chat API")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"), help="Interface to bind")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")), help="Port to listen on")
    parser.add_argument("--reload", action="store_true", help="Restart on source changes")
    args = parser.parse_args()

    logger.info(f"Chat endpoint: http://{args.host}:{args.port}/api/v1/chat (docs at /docs)")

    uvicorn.run(
        "chatbuilder.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
