"""
Per-contact conversation engine.

Drives onboarding (source language -> target language -> optional voice
preference and speed) and gates translation behind a completed setup:

    AWAITING_SOURCE_LANG -> AWAITING_TARGET_LANG -> AWAITING_VOICE_PREFERENCE
        -> AWAITING_VOICE_SPEED -> READY

Each inbound message consumes one transition. State is persisted before the
reply is returned, so a crash between the two at worst repeats a question.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union

import structlog

from src.translator import prompts
from src.translator.config import get_config
from src.translator.language import NoMatch, match_language, normalize_for_matching
from src.translator.messaging import mask_address
from src.translator.models import (
    Attachment,
    ContactSession,
    PlanTier,
    ReplyPlan,
    Step,
    TranslationRecord,
    VoicePreference,
    VoiceSpeed,
)
from src.translator.pipeline import PipelineResult, TranslationPipeline

logger = structlog.get_logger(__name__)


class SessionRepository(Protocol):
    async def load(self, contact_id: str) -> Optional[ContactSession]:
        ...

    async def upsert(self, session: ContactSession) -> ContactSession:
        ...

    async def insert_record(self, record: TranslationRecord) -> None:
        ...


@dataclass(frozen=True)
class VoiceChoice:
    preference: Optional[VoicePreference]


_VOICE_KEYWORDS = {
    "1": VoicePreference.MALE,
    "male": VoicePreference.MALE,
    "man": VoicePreference.MALE,
    "m": VoicePreference.MALE,
    "2": VoicePreference.FEMALE,
    "female": VoicePreference.FEMALE,
    "woman": VoicePreference.FEMALE,
    "f": VoicePreference.FEMALE,
}

_NO_PREFERENCE_KEYWORDS = ("3", "skip", "any", "none", "no preference")


def match_voice_preference(text: str) -> Union[VoiceChoice, NoMatch]:
    normalized = normalize_for_matching(text)
    if not normalized:
        return NoMatch(text=text or "")

    # "1️⃣" and "1." still count as "1".
    head = normalized[0] if normalized[0].isdigit() else normalized
    if head in _VOICE_KEYWORDS:
        return VoiceChoice(_VOICE_KEYWORDS[head])
    if head in _NO_PREFERENCE_KEYWORDS:
        return VoiceChoice(None)
    return NoMatch(text=text)


@dataclass(frozen=True)
class SpeedChoice:
    speed: VoiceSpeed


_SPEED_KEYWORDS = {
    "1": VoiceSpeed.NORMAL,
    "normal": VoiceSpeed.NORMAL,
    "2": VoiceSpeed.SLOW,
    "slow": VoiceSpeed.SLOW,
    "slower": VoiceSpeed.SLOW,
}


def match_voice_speed(text: str) -> Union[SpeedChoice, NoMatch]:
    normalized = normalize_for_matching(text)
    if not normalized:
        return NoMatch(text=text or "")

    head = normalized[0] if normalized[0].isdigit() else normalized
    if head in _SPEED_KEYWORDS:
        return SpeedChoice(_SPEED_KEYWORDS[head])
    return NoMatch(text=text)


def is_reset_command(text: str) -> bool:
    return normalize_for_matching(text) in prompts.RESET_KEYWORDS


class SessionStateMachine:
    def __init__(
        self,
        store: SessionRepository,
        pipeline: TranslationPipeline,
        config: Optional[Any] = None,
    ):
        self.config = config or get_config()
        self._store = store
        self._pipeline = pipeline

    async def _save(self, session: ContactSession) -> ContactSession:
        saved = await self._store.upsert(session)
        logger.info(
            "Session saved",
            contact=mask_address(session.contact_id),
            step=session.step.value,
            source_lang=session.source_lang,
            target_lang=session.target_lang,
        )
        return saved

    async def handle_message(
        self,
        contact_id: str,
        text: str,
        attachment: Optional[Attachment] = None,
    ) -> ReplyPlan:
        text = (text or "").strip()

        session = await self._store.load(contact_id)
        if session is None:
            session = ContactSession(
                contact_id=contact_id,
                speaking_rate=self.config.tts_speaking_rate,
            )
            await self._save(session)
            logger.info("New contact", contact=mask_address(contact_id))
            return ReplyPlan.text(prompts.welcome())

        if is_reset_command(text):
            await self._save(session.reset(speaking_rate=self.config.tts_speaking_rate))
            return ReplyPlan.text(prompts.reset_done())

        if session.step == Step.AWAITING_SOURCE_LANG:
            return await self._handle_source(session, text)
        if session.step == Step.AWAITING_TARGET_LANG:
            return await self._handle_target(session, text)
        if session.step == Step.AWAITING_VOICE_PREFERENCE:
            return await self._handle_voice(session, text)
        if session.step == Step.AWAITING_VOICE_SPEED:
            return await self._handle_speed(session, text)
        return await self._handle_ready(session, text, attachment)

    async def _handle_source(self, session: ContactSession, text: str) -> ReplyPlan:
        choice = match_language(text)
        if isinstance(choice, NoMatch):
            return ReplyPlan.text(prompts.invalid_choice(), prompts.languages_menu())

        session.source_lang = choice.code
        session.step = Step.AWAITING_TARGET_LANG
        await self._save(session)
        return ReplyPlan.text(prompts.target_menu())

    async def _handle_target(self, session: ContactSession, text: str) -> ReplyPlan:
        choice = match_language(text)
        if isinstance(choice, NoMatch):
            return ReplyPlan.text(prompts.invalid_choice(), prompts.languages_menu())

        if choice.code == session.source_lang:
            return ReplyPlan.text(prompts.must_differ(), prompts.languages_menu())

        session.target_lang = choice.code
        if self.config.voice_preference_step:
            session.step = Step.AWAITING_VOICE_PREFERENCE
            await self._save(session)
            return ReplyPlan.text(prompts.voice_menu())

        session.step = Step.READY
        await self._save(session)
        return ReplyPlan.text(
            prompts.setup_complete(session.source_lang or "", session.target_lang, None)
        )

    async def _handle_voice(self, session: ContactSession, text: str) -> ReplyPlan:
        choice = match_voice_preference(text)
        if isinstance(choice, NoMatch):
            return ReplyPlan.text(prompts.invalid_voice_choice(), prompts.voice_menu())

        session.voice_preference = choice.preference
        session.step = Step.AWAITING_VOICE_SPEED
        await self._save(session)
        return ReplyPlan.text(prompts.speed_menu(self.config.tts_slow_speaking_rate))

    async def _handle_speed(self, session: ContactSession, text: str) -> ReplyPlan:
        choice = match_voice_speed(text)
        if isinstance(choice, NoMatch):
            return ReplyPlan.text(
                prompts.invalid_speed_choice(),
                prompts.speed_menu(self.config.tts_slow_speaking_rate),
            )

        if choice.speed == VoiceSpeed.SLOW:
            session.speaking_rate = self.config.tts_slow_speaking_rate
        else:
            session.speaking_rate = self.config.tts_speaking_rate
        session.step = Step.READY
        await self._save(session)
        return ReplyPlan.text(
            prompts.setup_complete(
                session.source_lang or "",
                session.target_lang or "",
                session.voice_preference,
                choice.speed,
            )
        )

    def _over_free_allowance(self, session: ContactSession) -> bool:
        limit = self.config.free_message_limit
        return (
            limit > 0
            and session.plan_tier == PlanTier.FREE.value
            and session.usage_counter >= limit
        )

    async def _handle_ready(
        self,
        session: ContactSession,
        text: str,
        attachment: Optional[Attachment],
    ) -> ReplyPlan:
        if not session.is_ready():
            logger.warning(
                "Session marked ready with incomplete languages",
                contact=mask_address(session.contact_id),
                source_lang=session.source_lang,
                target_lang=session.target_lang,
            )
            return ReplyPlan.text(prompts.setup_incomplete())

        is_audio = attachment is not None and attachment.is_audio
        if not is_audio and not text:
            return ReplyPlan.text(prompts.unsupported_message())

        if self._over_free_allowance(session):
            logger.info(
                "Free allowance exhausted",
                contact=mask_address(session.contact_id),
                usage_counter=session.usage_counter,
            )
            return ReplyPlan.text(prompts.paywall(self.config.free_message_limit))

        result: PipelineResult
        if is_audio and attachment is not None:
            result = await self._pipeline.process_audio(session, attachment)
        else:
            result = await self._pipeline.process_text(session, text)

        session.usage_counter += 1
        await self._save(session)
        await self._store.insert_record(result.record)
        return result.plan
