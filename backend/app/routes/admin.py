# /app/routes/admin.py

import structlog
from typing import List
from fastapi import APIRouter, Depends, HTTPException

from app.models.api import (
    SimulatedMessageRequest,
    SimulatedMessageResponse,
    UserSummary,
    UserListResponse,
    ConversationMessage,
    StatsResponse,
)
from app.models.flow import FlowSession
from app.services import conversation_service as conversation_module
from app.services.db_service import db_service
from app.utils.dependencies import verify_api_key

# This file defines the admin JSON API: captured requests, per-user message
# logs, statistics, live session inspection and a test endpoint that runs
# the flow engine without sending anything to WhatsApp.

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(verify_api_key)]
)

log = structlog.get_logger(__name__)


def _service():
    return conversation_module.conversation_service


@router.get("/users", response_model=UserListResponse)
async def list_users():
    """All users with their captured intent and answers."""
    try:
        rows = await db_service.get_all_users()
    except Exception as e:
        log.error("Failed to load users", error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load users")
    users = [UserSummary(**row) for row in rows]
    return UserListResponse(users=users, count=len(users))


@router.get("/conversations/{phone}", response_model=List[ConversationMessage])
async def get_conversation(phone: str):
    """Messages exchanged with one user, oldest first."""
    try:
        rows = await db_service.get_user_conversation(phone)
    except Exception as e:
        log.error("Failed to load conversation", phone=phone, error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load conversation")
    return [ConversationMessage(**row) for row in rows]


@router.get("/stats", response_model=StatsResponse)
async def get_stats():
    """User, message and per-intent request totals."""
    service = _service()
    try:
        stats = await db_service.get_stats(service.engine.flow.intents)
    except Exception as e:
        log.error("Failed to compute stats", error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to compute stats")
    return StatsResponse(**stats, active_sessions=len(service.engine.sessions))


@router.get("/sessions/{user_id}", response_model=FlowSession)
async def get_session(user_id: str):
    """Current in-memory flow session of a user."""
    session = _service().engine.sessions.peek(user_id)
    if session is None:
        raise HTTPException(status_code=404, detail="No active session for this user")
    return session


@router.post("/test", response_model=SimulatedMessageResponse)
async def simulate_message(payload: SimulatedMessageRequest):
    """Runs a message through the flow engine without WhatsApp delivery."""
    service = _service()
    response = await service.handle_message(payload.user_id, payload.message, deliver=False)
    return SimulatedMessageResponse(response=response, session=service.engine.sessions.peek(payload.user_id))
