"""
Voice catalog cache.

Fetches the synthesis provider's voice list once and indexes it by two-letter
language prefix ("es" covers es-ES and es-US). Loading is single-flight:
concurrent callers wait for the same fetch instead of issuing their own.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterable, Optional, Protocol, Tuple

import structlog

from src.translator.errors import FetchError
from src.translator.models import VoicePreference

logger = structlog.get_logger(__name__)


class VoiceTier(IntEnum):
    """Lower sorts first."""
    PREMIUM = 0   # Neural2 / Studio / Chirp / Journey
    NEURAL = 1    # WaveNet
    STANDARD = 2
    OTHER = 3


_PREMIUM_MARKERS = ("neural2", "studio", "chirp", "journey", "polyglot")


def tier_for_voice_name(name: str) -> VoiceTier:
    lowered = (name or "").lower()
    if any(marker in lowered for marker in _PREMIUM_MARKERS):
        return VoiceTier.PREMIUM
    if "wavenet" in lowered:
        return VoiceTier.NEURAL
    if "standard" in lowered:
        return VoiceTier.STANDARD
    return VoiceTier.OTHER


@dataclass(frozen=True)
class VoiceDescriptor:
    name: str
    language_codes: Tuple[str, ...]
    gender: Optional[VoicePreference] = None
    tier: VoiceTier = VoiceTier.OTHER

    @property
    def language_code(self) -> str:
        return self.language_codes[0] if self.language_codes else ""


class VoiceListSource(Protocol):
    async def list_voices(self) -> list[VoiceDescriptor]:
        ...


def index_voices(voices: Iterable[VoiceDescriptor]) -> Dict[str, Tuple[VoiceDescriptor, ...]]:
    """Group voices by two-letter prefix, best tier first."""
    grouped: Dict[str, list[VoiceDescriptor]] = {}
    for voice in voices:
        prefixes = {code.split("-", 1)[0].lower() for code in voice.language_codes if code}
        for prefix in prefixes:
            grouped.setdefault(prefix, []).append(voice)

    return {
        prefix: tuple(sorted(items, key=lambda v: (v.tier, v.name)))
        for prefix, items in grouped.items()
    }


class VoiceCatalog:
    """
    Process-wide read-through cache of synthesis voices.

    Populated once (warmed at startup) and reused for the process lifetime.
    A failed load leaves the cache empty so the next call retries.
    """

    def __init__(self, source: VoiceListSource):
        self._source = source
        self._index: Optional[Dict[str, Tuple[VoiceDescriptor, ...]]] = None
        self._lock = asyncio.Lock()
        self.load_count = 0

    @property
    def is_loaded(self) -> bool:
        return self._index is not None

    async def load(self) -> Dict[str, Tuple[VoiceDescriptor, ...]]:
        if self._index is not None:
            return self._index

        async with self._lock:
            if self._index is not None:
                return self._index

            self.load_count += 1
            try:
                voices = await self._source.list_voices()
            except FetchError:
                raise
            except Exception as e:
                logger.error("Voice catalog fetch failed", error=str(e))
                raise FetchError(f"Voice catalog fetch failed: {e}") from e

            self._index = index_voices(voices)
            logger.info(
                "Voice catalog loaded",
                voices=len(voices),
                languages=len(self._index),
            )
            return self._index

    async def voices_for(self, lang: str) -> Tuple[VoiceDescriptor, ...]:
        index = await self.load()
        prefix = (lang or "").split("-", 1)[0].lower()
        return index.get(prefix, ())

    async def pick_voice(
        self,
        lang: str,
        gender: Optional[VoicePreference] = None,
    ) -> Optional[VoiceDescriptor]:
        """Best voice for `lang`, restricted to `gender` when given."""
        for voice in await self.voices_for(lang):
            if gender is None or voice.gender == gender:
                return voice
        return None
