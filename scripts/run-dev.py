"""
FastAPI Development Server

Run the VKG Query Agent API in development mode.

Usage:
    pip install -e .
    python scripts/run-dev.py
"""

import os
from pathlib import Path

import uvicorn
from loguru import logger

project_root = Path(__file__).parent.parent
os.chdir(project_root)


def main():
    """Start the FastAPI development server"""
    logger.info("=" * 80)
    logger.info("VKG Query Agent - API Server")
    logger.info("=" * 80)
    logger.info("Server will be available at: http://localhost:8000")
    logger.info("API Documentation: http://localhost:8000/docs")
    logger.info("Health Check: http://localhost:8000/health")
    logger.info("Federated query: POST http://localhost:8000/api/vkg/query")
    logger.info("Press CTRL+C to stop the server")
    logger.info("=" * 80)

    uvicorn.run(
        "vkg_agent.api.app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
        access_log=True,
        reload_dirs=[str(project_root / "src")],
    )


if __name__ == "__main__":
    main()
