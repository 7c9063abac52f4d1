from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

import structlog

from src.translator.config import get_config
from src.translator.errors import FetchError, SynthesisError
from src.translator.models import VoicePreference
from src.translator.tts_providers.base import TTSProvider
from src.translator.tts_types import SynthesizedAudio
from src.translator.voices import VoiceCatalog, VoiceDescriptor

logger = structlog.get_logger(__name__)

# Locale used when the catalog has nothing for a language prefix.
DEFAULT_LOCALES = {
    "en": "en-US",
    "es": "es-ES",
    "fr": "fr-FR",
    "pt": "pt-BR",
    "de": "de-DE",
}


@dataclass(frozen=True)
class VoiceAttempt:
    label: str
    language_code: str
    voice_name: Optional[str] = None


def default_locale(lang: str) -> str:
    prefix = (lang or "").split("-", 1)[0].lower()
    return DEFAULT_LOCALES.get(prefix, lang)


class SpeechSynthesizer:
    """
    Speech synthesis with a layered voice fallback chain.

    Attempts, in order, until one yields non-empty audio:
    1. best voice for the language with the contact's gender preference
    2. best voice for the language, any gender
    3. the language code alone (provider picks its default voice)
    4. the fixed default voice/locale from config
    """

    def __init__(
        self,
        provider: TTSProvider,
        catalog: VoiceCatalog,
        config: Optional[Any] = None,
    ):
        self.config = config or get_config()
        self._provider = provider
        self._catalog = catalog

    async def _catalog_voice(
        self,
        lang: str,
        gender: Optional[VoicePreference],
    ) -> Optional[VoiceDescriptor]:
        try:
            return await self._catalog.pick_voice(lang, gender)
        except FetchError as e:
            # Catalog unavailable: the language-only and default attempts still work.
            logger.warning("Voice catalog unavailable", error=str(e))
            return None

    async def plan_attempts(
        self,
        lang: str,
        voice_preference: Optional[VoicePreference] = None,
    ) -> List[VoiceAttempt]:
        attempts: List[VoiceAttempt] = []

        if voice_preference is not None:
            preferred = await self._catalog_voice(lang, voice_preference)
            if preferred:
                attempts.append(VoiceAttempt("preferred_gender", preferred.language_code, preferred.name))

        best = await self._catalog_voice(lang, None)
        if best:
            attempts.append(VoiceAttempt("best_available", best.language_code, best.name))

        attempts.append(VoiceAttempt("language_only", default_locale(lang)))
        attempts.append(
            VoiceAttempt(
                "hard_default",
                self.config.tts_default_language,
                self.config.tts_default_voice,
            )
        )

        # Drop repeats (e.g. the preferred voice is also the best overall).
        unique: List[VoiceAttempt] = []
        seen: set[tuple[str, Optional[str]]] = set()
        for attempt in attempts:
            key = (attempt.language_code, attempt.voice_name)
            if key not in seen:
                seen.add(key)
                unique.append(attempt)
        return unique

    async def synthesize(
        self,
        text: str,
        lang: str,
        voice_preference: Optional[VoicePreference] = None,
        speaking_rate: Optional[float] = None,
    ) -> SynthesizedAudio:
        if not text or not text.strip():
            raise SynthesisError("Nothing to synthesize")

        attempts = await self.plan_attempts(lang, voice_preference)
        errors: List[str] = []

        for attempt in attempts:
            try:
                audio = await self._provider.synthesize(
                    text,
                    language_code=attempt.language_code,
                    voice_name=attempt.voice_name,
                    speaking_rate=speaking_rate,
                )
            except Exception as e:
                errors.append(f"{attempt.label}: {e}")
                logger.warning(
                    "Synthesis attempt failed",
                    attempt=attempt.label,
                    voice=attempt.voice_name,
                    language_code=attempt.language_code,
                    error=str(e),
                )
                continue

            if not audio:
                errors.append(f"{attempt.label}: empty audio")
                logger.warning("Synthesis attempt returned no audio", attempt=attempt.label)
                continue

            logger.info(
                "Synthesis complete",
                attempt=attempt.label,
                voice=attempt.voice_name,
                language_code=attempt.language_code,
                size_bytes=len(audio),
            )
            return SynthesizedAudio(
                audio_bytes=audio,
                voice_name=attempt.voice_name,
                language_code=attempt.language_code,
                meta={"attempt": attempt.label},
            )

        raise SynthesisError("All synthesis attempts failed: " + "; ".join(errors))
