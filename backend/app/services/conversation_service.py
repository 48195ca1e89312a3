# /app/services/conversation_service.py

import structlog
from typing import Dict, Any, Optional

from app.config.settings import settings
from app.models.flow import ResponseDescriptor
from app.services.db_service import db_service
from app.services.security_service import SecurityService
from app.services.whatsapp_service import whatsapp_service
from app.utils.locks import UserLockRegistry
from app.utils.metrics import message_counter, transition_counter, active_sessions_gauge
from app.workflows.definitions import FLOWS
from app.workflows.engine import FlowEngine, EngineResult
from app.workflows.validator import load_flow

# This service hosts the flow engine: it serializes messages per user, runs
# the transition, persists the result and hands the response to WhatsApp.
# Persistence and delivery are best effort; a computed transition stays
# committed whatever happens downstream.

log = structlog.get_logger(__name__)


def extract_message_text(message: Dict[str, Any]) -> Optional[str]:
    """
    Extracts the plain text the engine works on from a WhatsApp message.
    Button clicks yield the clicked option id. Returns None for message
    types the flow cannot answer (images, audio, locations...).
    """
    msg_type = message.get("type")
    if msg_type == "text":
        return (message.get("text") or {}).get("body")
    if msg_type == "interactive":
        interactive = message.get("interactive") or {}
        interactive_type = interactive.get("type")
        if interactive_type == "button_reply":
            return (interactive.get("button_reply") or {}).get("id")
        if interactive_type == "list_reply":
            return (interactive.get("list_reply") or {}).get("id")
    if msg_type == "button":
        # Quick-reply buttons on template messages
        return (message.get("button") or {}).get("payload")
    return None


class ConversationService:
    def __init__(self, engine: FlowEngine, db=db_service, sender=whatsapp_service):
        self.engine = engine
        self.db = db
        self.sender = sender
        self.locks = UserLockRegistry()

    async def handle_message(self, user_id: str, message_text: str, deliver: bool = True) -> ResponseDescriptor:
        """
        Runs one message through the engine for a user, then persists and delivers
        the result. Messages from the same user are processed one at a time.
        """
        async with self.locks.hold(user_id):
            await self._persist_inbound(user_id, message_text)

            result: EngineResult = self.engine.apply_message(user_id, message_text)
            response = result["response"]
            transition_counter.labels(outcome=result["outcome"]).inc()
            active_sessions_gauge.set(len(self.engine.sessions))
            log.info(
                "Flow transition computed",
                user_id=user_id,
                outcome=result["outcome"],
                step_id=result["step_id"],
                response_kind=response.kind,
            )

            await self._persist_outcome(user_id, result)

            # Delivered under the lock so replies reach the user in message order.
            if deliver:
                wamid = await self.sender.send_response(user_id, response)
                message_counter.labels(direction="outbound", kind=response.kind).inc()
                if wamid is None:
                    log.warning("Response delivery failed; session left as committed", user_id=user_id)
        return response

    async def process_webhook_message(self, message: Dict[str, Any]) -> Optional[ResponseDescriptor]:
        """Entry point for one message of a WhatsApp webhook payload."""
        from_number = message.get("from")
        clean_phone = SecurityService.sanitize_phone_number(from_number)
        if not clean_phone:
            log.warning("Webhook message with invalid sender ignored", sender=from_number)
            return None

        try:
            message_text = extract_message_text(message)
        except (AttributeError, TypeError):
            log.warning("Malformed webhook message ignored", user_id=clean_phone, message_type=message.get("type"))
            return None
        if message_text is None:
            log.info("Unsupported message type ignored", user_id=clean_phone, message_type=message.get("type"))
            message_counter.labels(direction="inbound", kind="unsupported").inc()
            return None

        try:
            message_text = SecurityService.validate_message_content(message_text)
        except ValueError as e:
            log.warning("Inbound message rejected", user_id=clean_phone, error=str(e))
            return None

        message_counter.labels(direction="inbound", kind=message.get("type", "unknown")).inc()
        try:
            return await self.handle_message(clean_phone, message_text)
        except Exception:
            # Runs as a background task: nothing upstream would see this.
            log.exception("Failed to process webhook message", user_id=clean_phone)
            return None

    # ==================== Persistence ====================

    async def _persist_inbound(self, user_id: str, message_text: str):
        try:
            await self.db.save_user(user_id)
            await self.db.save_message(user_id, "incoming", message_text)
        except Exception:
            log.error("Failed to persist inbound message", user_id=user_id, exc_info=True)

    async def _persist_outcome(self, user_id: str, result: EngineResult):
        session = self.engine.sessions.peek(user_id)
        response = result["response"]
        try:
            if session is not None and result["outcome"] in ("advanced", "invalid_choice"):
                await self.db.save_user_data(user_id, session.intent, session.answers, session.current_step_id)
            await self.db.save_message(user_id, "outgoing", response.text, result["step_id"], message_type=response.kind)
        except Exception:
            log.error("Failed to persist flow outcome", user_id=user_id, exc_info=True)


def build_engine(flow_name: str = settings.flow_name) -> FlowEngine:
    """Loads and validates the configured flow. Raises FlowValidationError if it is invalid."""
    if flow_name not in FLOWS:
        raise KeyError(f"Flow '{flow_name}' is not defined")
    return FlowEngine(load_flow(FLOWS[flow_name]))


# Globally accessible instance
conversation_service = ConversationService(build_engine())
