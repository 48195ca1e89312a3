# /app/utils/lifecycle.py

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from app.utils.logging import setup_logging
from app.services.db_service import db_service
from app.services.whatsapp_service import whatsapp_service
from app.services.conversation_service import conversation_service

# This file manages the application's lifespan, handling startup tasks like
# initializing services and shutdown tasks like cleaning up connections.
# The flow itself is validated when conversation_service is imported, so an
# invalid flow stops the process before it accepts any request.

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()

    logger.info("Application starting up...")
    flow = conversation_service.engine.flow
    logger.info(f"Flow '{flow.name}' loaded with {len(flow.steps)} steps.")

    try:
        await db_service.create_indexes()
    except Exception as e:
        # Persistence is optional for the engine; keep serving without it.
        logger.error(f"Database unavailable at startup, continuing without indexes: {e}")

    logger.info("Application startup complete. Ready to accept requests.")

    yield  # Application is now running

    logger.info("Application shutting down...")

    await whatsapp_service.close()
    if db_service.client:
        db_service.client.close()
