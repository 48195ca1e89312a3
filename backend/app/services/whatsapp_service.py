# /app/services/whatsapp_service.py

import httpx
import logging
import re
import tenacity
from typing import Optional, Dict, Any

from app.config.settings import settings
from app.models.flow import ResponseDescriptor
from app.utils.metrics import whatsapp_send_counter

logger = logging.getLogger(__name__)

# WhatsApp Cloud API limits
MAX_TEXT_LENGTH = 4096
MAX_BUTTON_BODY_LENGTH = 1024
MAX_BUTTON_TITLE_LENGTH = 20
MAX_REPLY_BUTTONS = 3


def normalize_recipient(to_phone: str) -> str:
    clean_phone = re.sub(r"[^\d+]", "", to_phone or "")
    if clean_phone and not clean_phone.startswith("+"):
        clean_phone = "+" + clean_phone
    return clean_phone


def build_payload(to_phone: str, response: ResponseDescriptor) -> Dict[str, Any]:
    """Translates a response descriptor into a WhatsApp Cloud API message payload."""
    payload: Dict[str, Any] = {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": normalize_recipient(to_phone),
    }

    if response.kind == "interactive" and response.options:
        if len(response.options) > MAX_REPLY_BUTTONS:
            logger.warning(
                f"Response for {to_phone} has {len(response.options)} options; "
                f"only the first {MAX_REPLY_BUTTONS} are sent as reply buttons."
            )
        payload["type"] = "interactive"
        payload["interactive"] = {
            "type": "button",
            "body": {"text": response.text[:MAX_BUTTON_BODY_LENGTH]},
            "action": {
                "buttons": [
                    {"type": "reply", "reply": {"id": option.id, "title": option.title[:MAX_BUTTON_TITLE_LENGTH]}}
                    for option in response.options[:MAX_REPLY_BUTTONS]
                ]
            }
        }
    else:
        payload["type"] = "text"
        payload["text"] = {"body": response.text[:MAX_TEXT_LENGTH]}

    return payload


class WhatsAppService:
    def __init__(self, access_token: str, phone_id: str, base_url: str = settings.whatsapp_api_base,
                 timeout: float = settings.whatsapp_timeout_seconds):
        self.access_token = access_token
        self.phone_id = phone_id
        self.base_url = base_url
        self.http_client = httpx.AsyncClient(timeout=timeout)

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=2, min=1, max=10),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    async def resilient_api_call(self, func, *args, **kwargs):
        return await func(*args, **kwargs)

    async def send_whatsapp_request(self, payload: dict) -> Optional[str]:
        """Sends a payload to the messages endpoint. Returns the wamid, or None on failure."""
        to_phone = payload.get("to")
        if not to_phone:
            logger.error(f"send_whatsapp_request_invalid_phone: {to_phone}")
            whatsapp_send_counter.labels(status="invalid").inc()
            return None

        url = f"{self.base_url}/{self.phone_id}/messages"
        headers = {"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"}
        try:
            response = await self.resilient_api_call(self.http_client.post, url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"whatsapp_send_error to {to_phone}: {e}", exc_info=True)
            whatsapp_send_counter.labels(status="error").inc()
            return None

        if response.status_code == 200:
            message_id = response.json().get("messages", [{}])[0].get("id")
            logger.info(f"WhatsApp message sent to {to_phone}, wamid: {message_id}")
            whatsapp_send_counter.labels(status="sent").inc()
            return message_id

        try:
            error_message = (response.json().get("error") or {}).get("message", "Unknown error")
        except ValueError:
            error_message = response.text
        logger.error(f"whatsapp_send_failed to {to_phone}: {response.status_code} - {error_message}")
        whatsapp_send_counter.labels(status="failed").inc()
        return None

    async def send_response(self, to_phone: str, response: ResponseDescriptor) -> Optional[str]:
        """Delivers a flow engine response to the user."""
        return await self.send_whatsapp_request(build_payload(to_phone, response))

    async def close(self):
        await self.http_client.aclose()


# Globally accessible instance
whatsapp_service = WhatsAppService(settings.whatsapp_access_token, settings.whatsapp_phone_id)
