"""
OpenAI Speech-to-Text client.

Transcribes a normalized voice note with a primary model and falls back once
to a secondary, always-available model (whisper-1) on any failure, including
"model not found" on accounts without access to the primary.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional

import structlog
from openai import AsyncOpenAI

from src.translator.audio import NormalizedAudio
from src.translator.config import get_config
from src.translator.errors import TranscriptionError
from src.translator.language import normalize_detected_language

logger = structlog.get_logger(__name__)


@dataclass
class Transcript:
    """Result from STT."""
    text: str
    language: Optional[str] = None
    model: str = ""
    latency_ms: float = 0.0


def _response_format_for(model: str) -> str:
    # Only the whisper family returns verbose_json (which carries `language`).
    return "verbose_json" if model.startswith("whisper") else "json"


class Transcriber:
    """Two-attempt transcription: primary model, then the fallback model."""

    def __init__(self, config: Optional[Any] = None, client: Optional[AsyncOpenAI] = None):
        if config is None:
            config = get_config()

        self.config = config
        self.primary_model = config.stt_primary_model
        self.fallback_model = config.stt_fallback_model
        self._client = client or AsyncOpenAI(
            api_key=config.openai_api_key,
            timeout=config.http_timeout_seconds,
        )

    async def _transcribe_with(self, model: str, audio: NormalizedAudio) -> Transcript:
        started = time.time()
        resp = await self._client.audio.transcriptions.create(
            model=model,
            file=(audio.path.name, audio.path.read_bytes(), "audio/wav"),
            response_format=_response_format_for(model),
        )

        text = (getattr(resp, "text", None) or "").strip()
        if not text:
            raise TranscriptionError(f"{model} returned an empty transcript")

        return Transcript(
            text=text,
            language=normalize_detected_language(getattr(resp, "language", None)),
            model=model,
            latency_ms=round((time.time() - started) * 1000, 2),
        )

    async def transcribe(self, audio: NormalizedAudio) -> Transcript:
        """
        Transcribe audio, trying the primary model then the fallback model.

        `Transcript.language` may be None; callers that need it must run text
        language detection on the transcript.
        """
        models = [self.primary_model]
        if self.fallback_model and self.fallback_model != self.primary_model:
            models.append(self.fallback_model)

        last_error: Optional[BaseException] = None
        for model in models:
            try:
                transcript = await self._transcribe_with(model, audio)
                logger.info(
                    "Transcription complete",
                    model=model,
                    language=transcript.language,
                    chars=len(transcript.text),
                    latency_ms=transcript.latency_ms,
                )
                return transcript
            except Exception as e:
                last_error = e
                logger.warning(
                    "Transcription attempt failed",
                    model=model,
                    error_type=type(e).__name__,
                    error=str(e),
                )

        raise TranscriptionError(
            f"All transcription attempts failed: {type(last_error).__name__ if last_error else 'unknown'}"
        ) from last_error
