# /app/services/security_service.py

import hmac
import hashlib
import re

# This service provides webhook signature verification and the input
# sanitization applied to inbound WhatsApp messages.

MAX_MESSAGE_LENGTH = 4096


class SecurityService:
    @staticmethod
    def verify_webhook_signature(payload: bytes, signature: str, secret: str) -> bool:
        if not signature or not signature.startswith('sha256='):
            return False
        expected_signature = hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected_signature, signature[7:])

    @staticmethod
    def sanitize_phone_number(phone: str) -> str:
        """
        Normalizes a WhatsApp sender id to an E.164-style string (e.g. +212612345678).
        Returns an empty string for invalid or empty inputs instead of raising.
        """
        if not phone or not isinstance(phone, str):
            return ""

        clean_phone = re.sub(r"[^\d+]", "", phone.strip())
        if not clean_phone.startswith("+"):
            clean_phone = "+" + clean_phone.lstrip("+")

        if not re.match(r"^\+\d{10,15}$", clean_phone):
            return ""

        return clean_phone

    @staticmethod
    def validate_message_content(message: str) -> str:
        """
        Rejects oversized messages. The text is otherwise passed through
        untouched: button option ids are matched exactly, so no trimming.
        """
        if not isinstance(message, str):
            raise ValueError("Message must be text")
        if len(message) > MAX_MESSAGE_LENGTH:
            raise ValueError("Message too long")
        return message
