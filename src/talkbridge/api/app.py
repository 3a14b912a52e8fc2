"""
TalkBridge FastAPI Application.

Receives Nextcloud Talk bot webhooks.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from talkbridge import __version__
from talkbridge.api.routes import webhook
from talkbridge.config import settings
from talkbridge.db.connection import check_connection
from talkbridge.logging_config import setup_logging
from talkbridge.talk.client import TalkClient, TalkConfig

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Configures logging, checks the database and opens the reply client.
    """
    setup_logging(context="api")

    if not check_connection():
        logger.error("Database is not reachable; webhook calls will fail until it is")
    if not settings.talk_bot_secret:
        logger.warning("TALK_BOT_SECRET is not set; webhook signatures cannot be verified")

    app.state.talk_client = TalkClient(TalkConfig.from_settings(settings))
    logger.info("Application startup complete")

    yield

    app.state.talk_client.close()
    logger.info("Application shutdown complete")


app = FastAPI(
    lifespan=lifespan,
    title="TalkBridge API",
    description="Nextcloud Talk bot backend with LLM answers and document retrieval",
    version=__version__,
)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint - API health check."""
    return {
        "status": "ok",
        "message": "TalkBridge API is running",
        "version": __version__,
    }


@app.get("/health")
def health() -> dict[str, str]:
    """Health check endpoint."""
    db_status = "healthy" if check_connection() else "unhealthy"
    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "database": db_status,
    }


app.include_router(webhook.router)
