"""
Outbound WhatsApp delivery through the Twilio REST API.

The webhook itself only returns an empty TwiML document; the real reply is a
separate `messages.create` call made from the background worker.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Optional

import structlog
from twilio.rest import Client as TwilioClient

from src.translator.config import get_config
from src.translator.models import ReplyPlan

logger = structlog.get_logger(__name__)

WHATSAPP_PREFIX = "whatsapp:"

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?>\n<Response></Response>'


def empty_twiml() -> str:
    return EMPTY_TWIML


def normalize_whatsapp_address(value: str) -> str:
    """Ensure exactly one `whatsapp:` prefix on an address."""
    address = (value or "").strip()
    while address.lower().startswith(WHATSAPP_PREFIX):
        address = address[len(WHATSAPP_PREFIX):]
    return f"{WHATSAPP_PREFIX}{address}"


def mask_address(value: str) -> str:
    """Mask a phone number for logs (keep the last 4 digits)."""
    def _mask(match: re.Match[str]) -> str:
        digits = match.group(0)
        return "*" * (len(digits) - 4) + digits[-4:]

    return re.sub(r"\d{5,}", _mask, value or "")


# Twilio rejects WhatsApp bodies longer than this.
MAX_BODY_LENGTH = 1600


def split_body(body: str, limit: int = MAX_BODY_LENGTH) -> list[str]:
    """
    Split a message body into chunks of at most `limit` characters.

    Prefers breaking at a newline, then at a space, as long as that keeps the
    chunk at least half full; otherwise the text is cut hard at the limit.
    """
    chunks: list[str] = []
    remaining = body
    while len(remaining) > limit:
        cut = remaining.rfind("\n", limit // 2, limit + 1)
        if cut < 0:
            cut = remaining.rfind(" ", limit // 2, limit + 1)
        if cut < 0:
            cut = limit
        chunk = remaining[:cut].rstrip()
        if chunk:
            chunks.append(chunk)
        remaining = remaining[cut:].lstrip()
    if remaining:
        chunks.append(remaining)
    return chunks


class TwilioMessenger:
    """Sends reply plans to a contact."""

    def __init__(self, config: Optional[Any] = None, client: Optional[TwilioClient] = None):
        self.config = config or get_config()
        self._client = client or TwilioClient(
            self.config.twilio_account_sid,
            self.config.twilio_auth_token,
        )
        # Normalized once at startup.
        self.from_address = normalize_whatsapp_address(self.config.twilio_whatsapp_from)

    async def send(self, to: str, plan: ReplyPlan) -> list[str]:
        """
        Deliver every text message in the plan, then the audio on its own.

        WhatsApp drops the caption of audio messages, so media never shares a
        message with text. Texts longer than MAX_BODY_LENGTH go out as several
        consecutive messages. Returns the Twilio message SIDs.
        """
        if plan.is_empty():
            return []

        to_address = normalize_whatsapp_address(to)
        payloads: list[dict[str, Any]] = [
            {"body": chunk} for body in plan.messages for chunk in split_body(body)
        ]
        if plan.media_url:
            payloads.append({"body": "", "media_url": [plan.media_url]})

        sids: list[str] = []
        for payload in payloads:
            # The Twilio SDK is synchronous.
            message = await asyncio.to_thread(
                self._client.messages.create,
                from_=self.from_address,
                to=to_address,
                **payload,
            )
            sids.append(getattr(message, "sid", ""))

        logger.info(
            "Reply delivered",
            to=mask_address(to_address),
            messages=len(sids),
            has_media=plan.has_audio,
        )
        return sids
