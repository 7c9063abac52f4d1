"""Translation Pipeline Orchestration.

Turns one inbound message from a READY contact into a reply plan:

text:   detect language -> resolve direction -> translate -> reply text
audio:  download -> ffmpeg (mono 16kHz WAV) -> STT (primary, fallback) ->
        [detect language if STT gave none] -> resolve direction -> translate ->
        TTS (voice fallback chain) -> reply transcript + translation + audio

Only synthesis failures are recovered here (the reply goes out without
audio); every other error propagates to the dispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog

from src.translator.audio import download_media, normalize_audio, temporary_audio
from src.translator.config import get_config
from src.translator.errors import SynthesisError
from src.translator.language import resolve_destination
from src.translator.llm import Translator
from src.translator.media import MediaStore
from src.translator.models import Attachment, ContactSession, ReplyPlan, TranslationRecord
from src.translator.prompts import transcript_line, translation_line
from src.translator.stt import Transcriber
from src.translator.tts import SpeechSynthesizer

logger = structlog.get_logger(__name__)

Downloader = Callable[..., Awaitable[bytes]]


@dataclass
class PipelineResult:
    plan: ReplyPlan
    record: TranslationRecord


class TranslationPipeline:
    def __init__(
        self,
        translator: Translator,
        transcriber: Transcriber,
        synthesizer: SpeechSynthesizer,
        media_store: MediaStore,
        config: Optional[Any] = None,
        downloader: Downloader = download_media,
    ):
        self.config = config or get_config()
        self._translator = translator
        self._transcriber = transcriber
        self._synthesizer = synthesizer
        self._media = media_store
        self._download = downloader

    def _resolve(self, detected: Optional[str], session: ContactSession) -> str:
        dest = resolve_destination(
            detected,
            session,
            unknown_policy=self.config.unknown_language_policy,
        )
        logger.info(
            "Translation direction resolved",
            detected=detected,
            source_lang=session.source_lang,
            target_lang=session.target_lang,
            dest_lang=dest,
        )
        return dest

    async def process_text(self, session: ContactSession, text: str) -> PipelineResult:
        detected = await self._translator.detect_language(text)
        dest = self._resolve(detected, session)
        translated = await self._translator.translate(text, dest)

        return PipelineResult(
            plan=ReplyPlan.text(translated),
            record=TranslationRecord(
                contact_id=session.contact_id,
                original_text=text,
                translated_text=translated,
                detected_lang=detected,
                dest_lang=dest,
                is_audio=False,
            ),
        )

    async def process_audio(self, session: ContactSession, attachment: Attachment) -> PipelineResult:
        async with temporary_audio() as workdir:
            raw = await self._download(
                attachment.url,
                auth=(self.config.twilio_account_sid, self.config.twilio_auth_token),
                timeout=self.config.http_timeout_seconds,
            )
            normalized = await normalize_audio(raw, attachment.content_type, workdir)
            transcript = await self._transcriber.transcribe(normalized)

        detected = transcript.language
        if detected is None:
            detected = await self._translator.detect_language(transcript.text)

        dest = self._resolve(detected, session)
        translated = await self._translator.translate(transcript.text, dest)

        media_url: Optional[str] = None
        try:
            audio = await self._synthesizer.synthesize(
                translated,
                dest,
                voice_preference=session.voice_preference,
                speaking_rate=session.speaking_rate,
            )
            media_url = self._media.save(audio)
        except SynthesisError as e:
            logger.error("Synthesis failed, replying with text only", dest_lang=dest, error=str(e))

        return PipelineResult(
            plan=ReplyPlan(
                messages=[transcript_line(transcript.text), translation_line(translated)],
                media_url=media_url,
            ),
            record=TranslationRecord(
                contact_id=session.contact_id,
                original_text=transcript.text,
                translated_text=translated,
                detected_lang=detected,
                dest_lang=dest,
                is_audio=True,
            ),
        )
