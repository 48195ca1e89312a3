# /app/models/api.py

from pydantic import BaseModel, Field
from typing import List, Dict, Optional
from datetime import datetime

from app.models.flow import FlowSession, ResponseDescriptor

# This file contains Pydantic models that define the structure of data for
# API requests and responses, ensuring type safety and validation.


class SimulatedMessageRequest(BaseModel):
    """A message to run through the flow engine without WhatsApp delivery."""
    user_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=4096)


class SimulatedMessageResponse(BaseModel):
    success: bool = True
    response: ResponseDescriptor
    session: Optional[FlowSession] = None


class UserSummary(BaseModel):
    phone_number: str
    name: Optional[str] = None
    created_at: Optional[datetime] = None
    last_interaction: Optional[datetime] = None
    intent: Optional[str] = None
    answers: Dict[str, str] = Field(default_factory=dict)
    status: Optional[str] = None
    request_date: Optional[datetime] = None


class ConversationMessage(BaseModel):
    user_phone: str
    direction: str
    message_type: Optional[str] = None
    message_text: Optional[str] = None
    step_id: Optional[str] = None
    created_at: Optional[datetime] = None


class StatsResponse(BaseModel):
    total_users: int
    total_messages: int
    requests_by_intent: Dict[str, int] = Field(default_factory=dict)
    active_sessions: int = 0


class UserListResponse(BaseModel):
    users: List[UserSummary]
    count: int
