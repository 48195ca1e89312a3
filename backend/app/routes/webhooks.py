# /app/routes/webhooks.py

import json
import asyncio
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Query
from fastapi.responses import JSONResponse, PlainTextResponse

from app.config.settings import settings
from app.services import conversation_service
from app.utils.dependencies import verify_webhook_signature
from app.utils.metrics import response_time_histogram
from app.utils.rate_limiter import limiter

# This file defines the WhatsApp webhook endpoints: the verification
# handshake and the message callback. Each inbound message is handed to the
# conversation service as a background task so Meta gets a fast 200.

router = APIRouter(
    tags=["Webhooks"]
)

log = structlog.get_logger(__name__)

# Keeps references so background tasks are not garbage collected mid-flight.
_background_tasks = set()


def _schedule(coro):
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


@router.get("/whatsapp")
async def verify_whatsapp_webhook(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge")
):
    """WhatsApp webhook verification (GET request)."""
    if hub_mode == "subscribe" and hub_verify_token == settings.whatsapp_verify_token:
        log.info("WhatsApp webhook verification successful.")
        return PlainTextResponse(hub_challenge)
    log.error("WhatsApp webhook verification failed.")
    raise HTTPException(status_code=403, detail="Forbidden")


@router.post("/whatsapp")
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def handle_whatsapp_webhook(
    request: Request,
    verified_body: bytes = Depends(verify_webhook_signature)
):
    """Receives WhatsApp message callbacks and schedules them for the flow engine."""
    with response_time_histogram.labels(endpoint="whatsapp_webhook").time():
        try:
            data = json.loads(verified_body.decode())
        except (UnicodeDecodeError, json.JSONDecodeError):
            log.warning("Webhook body is not valid JSON")
            raise HTTPException(status_code=400, detail="Invalid JSON body")

        scheduled = 0
        for entry in data.get("entry", []):
            for change in entry.get("changes", []):
                if change.get("field") != "messages":
                    log.debug("Ignoring non-message change", change=change)
                    continue

                value = change.get("value", {})
                incoming_phone_id = value.get("metadata", {}).get("phone_number_id")
                if incoming_phone_id and incoming_phone_id != settings.whatsapp_phone_id:
                    log.info(
                        "Ignored event for different phone ID.",
                        incoming_id=incoming_phone_id,
                        expected_id=settings.whatsapp_phone_id
                    )
                    continue

                for message in value.get("messages", []):
                    log.info("Processing incoming message", sender=message.get("from"), message_type=message.get("type"))
                    _schedule(conversation_service.conversation_service.process_webhook_message(message))
                    scheduled += 1

        if not scheduled:
            log.info("No message in webhook")
        return JSONResponse({"status": "success", "scheduled": scheduled})
