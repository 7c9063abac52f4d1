"""
Domain types shared by the session engine, the pipeline and the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Step(str, Enum):
    """Onboarding stage of a contact session."""
    AWAITING_SOURCE_LANG = "awaiting_source_lang"
    AWAITING_TARGET_LANG = "awaiting_target_lang"
    AWAITING_VOICE_PREFERENCE = "awaiting_voice_preference"
    AWAITING_VOICE_SPEED = "awaiting_voice_speed"
    READY = "ready"


class VoicePreference(str, Enum):
    MALE = "male"
    FEMALE = "female"


class VoiceSpeed(str, Enum):
    NORMAL = "normal"
    SLOW = "slow"


class PlanTier(str, Enum):
    FREE = "free"
    PAID = "paid"


@dataclass
class ContactSession:
    """
    Persisted per-contact state driving onboarding and language preferences.

    Created on first contact, never deleted. A reset re-initializes the
    language fields but keeps the metering fields.
    """

    contact_id: str
    step: Step = Step.AWAITING_SOURCE_LANG
    source_lang: Optional[str] = None
    target_lang: Optional[str] = None
    voice_preference: Optional[VoicePreference] = None
    speaking_rate: Optional[float] = None
    usage_counter: int = 0
    plan_tier: str = PlanTier.FREE.value
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def is_ready(self) -> bool:
        """READY with two distinct, non-empty languages."""
        return (
            self.step == Step.READY
            and bool(self.source_lang)
            and bool(self.target_lang)
            and self.source_lang != self.target_lang
        )

    def reset(self, speaking_rate: Optional[float] = None) -> "ContactSession":
        """Back to the source-language menu with `speaking_rate` restored to the default."""
        return replace(
            self,
            step=Step.AWAITING_SOURCE_LANG,
            source_lang=None,
            target_lang=None,
            voice_preference=None,
            speaking_rate=speaking_rate,
            updated_at=utcnow(),
        )


@dataclass(frozen=True)
class TranslationRecord:
    """One processed message. Append-only."""

    contact_id: str
    original_text: str
    translated_text: str
    detected_lang: Optional[str]
    dest_lang: str
    is_audio: bool = False
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Attachment:
    """Inbound media attachment as announced by the webhook."""

    url: str
    content_type: Optional[str] = None

    @property
    def is_audio(self) -> bool:
        return (self.content_type or "").lower().startswith("audio/")


@dataclass(frozen=True)
class InboundMessage:
    contact_id: str
    text: str = ""
    attachment: Optional[Attachment] = None
    received_at: datetime = field(default_factory=utcnow)


@dataclass
class ReplyPlan:
    """
    What to send back to the contact.

    Each entry in `messages` is delivered as its own chat message; `media_url`
    follows as a separate audio message.
    """

    messages: list[str] = field(default_factory=list)
    media_url: Optional[str] = None

    @classmethod
    def text(cls, *messages: str) -> "ReplyPlan":
        return cls(messages=[m for m in messages if m])

    @property
    def has_audio(self) -> bool:
        return bool(self.media_url)

    def is_empty(self) -> bool:
        return not self.messages and not self.media_url
