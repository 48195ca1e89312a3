# /app/routes/public.py

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from datetime import datetime

from app.config.settings import settings
from app.services import conversation_service
from app.utils.dependencies import verify_api_key

# This file defines public-facing endpoints that do not require user authentication,
# such as health checks and the root endpoint. The /metrics endpoint is
# conditionally protected by an API key.

router = APIRouter()

API_PREFIX = f"/api/{settings.api_version}"


@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "SmartFix WhatsApp Flow Bot",
        "status": "running",
        "flow": conversation_service.conversation_service.engine.flow.name,
        "environment": settings.environment,
        "endpoints": {
            "webhook": f"{API_PREFIX}/webhooks/whatsapp",
            "admin": f"{API_PREFIX}/admin",
            "metrics": "/metrics"
        }
    }


@router.get("/health", summary="Basic Health Check")
async def health_check():
    """Basic health check for load balancers."""
    return {"status": "healthy", "timestamp": datetime.utcnow()}


@router.get("/metrics", dependencies=[Depends(verify_api_key)])
async def metrics():
    """Prometheus metrics exposition."""
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)
