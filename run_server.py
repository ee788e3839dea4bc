#!/usr/bin/env python
"""
Election Integrity API Server Runner.

Usage:
    python run_server.py
"""

import os
import sys
import logging
import uvicorn

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger(__name__)


def main():
    """Run the integrity API server."""
    host = os.getenv("INTEGRITY_API_HOST", "0.0.0.0")
    port = int(os.getenv("INTEGRITY_API_PORT", os.getenv("PORT", "5000")))
    reload = os.getenv("ENVIRONMENT", "production") == "development"

    logger.info(f"Starting Election Integrity API on {host}:{port}")

    try:
        uvicorn.run(
            "api.main:app",
            host=host,
            port=port,
            reload=reload,
            log_level="info",
            access_log=True,
        )
    except Exception as e:
        logger.error(f"Failed to start API server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
