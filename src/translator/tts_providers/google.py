from __future__ import annotations

import base64
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx
import msgspec
import structlog

from src.translator.config import get_config
from src.translator.errors import FetchError, SynthesisError
from src.translator.models import VoicePreference
from src.translator.tts_providers.base import TTSProvider
from src.translator.voices import VoiceDescriptor, tier_for_voice_name

logger = structlog.get_logger(__name__)

GOOGLE_TTS_URL = "https://texttospeech.googleapis.com/v1"


class _GoogleVoice(msgspec.Struct):
    name: str
    languageCodes: list[str] = []
    ssmlGender: str = "SSML_VOICE_GENDER_UNSPECIFIED"
    naturalSampleRateHertz: int = 0


class _VoicesResponse(msgspec.Struct):
    voices: list[_GoogleVoice] = []


class _SynthesizeResponse(msgspec.Struct):
    audioContent: str = ""


_voices_decoder = msgspec.json.Decoder(_VoicesResponse)
_synthesize_decoder = msgspec.json.Decoder(_SynthesizeResponse)
_encoder = msgspec.json.Encoder()

_GENDERS = {
    "MALE": VoicePreference.MALE,
    "FEMALE": VoicePreference.FEMALE,
}


@dataclass
class GoogleTTSMetrics:
    """Metrics for TTS performance."""

    total_requests: int = 0
    failed_requests: int = 0
    total_characters: int = 0
    avg_total_ms: float = 0.0

    def record_synthesis(self, *, characters: int, total_ms: float) -> None:
        self.total_requests += 1
        self.total_characters += characters
        n = self.total_requests
        self.avg_total_ms = (self.avg_total_ms * (n - 1) + total_ms) / n


def to_descriptor(voice: _GoogleVoice) -> VoiceDescriptor:
    return VoiceDescriptor(
        name=voice.name,
        language_codes=tuple(voice.languageCodes),
        gender=_GENDERS.get(voice.ssmlGender),
        tier=tier_for_voice_name(voice.name),
    )


class GoogleTTS(TTSProvider):
    """
    Google Cloud Text-to-Speech over REST with an API key.

    Produces MP3, which WhatsApp accepts as a voice message.
    """

    def __init__(self, config: Optional[Any] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or get_config()
        self._client = client or httpx.AsyncClient(
            base_url=GOOGLE_TTS_URL,
            timeout=httpx.Timeout(self.config.http_timeout_seconds),
        )
        self._metrics = GoogleTTSMetrics()

    @property
    def metrics(self) -> GoogleTTSMetrics:
        return self._metrics

    async def close(self) -> None:
        await self._client.aclose()

    async def list_voices(self) -> list[VoiceDescriptor]:
        try:
            resp = await self._client.get("/voices", params={"key": self.config.google_tts_key})
        except httpx.HTTPError as e:
            raise FetchError(f"Voice list request failed: {e}") from e

        if resp.status_code != 200:
            raise FetchError(
                f"Voice list returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            payload = _voices_decoder.decode(resp.content)
        except msgspec.DecodeError as e:
            raise FetchError(f"Voice list response was malformed: {e}") from e

        return [to_descriptor(v) for v in payload.voices]

    async def synthesize(
        self,
        text: str,
        *,
        language_code: str,
        voice_name: Optional[str] = None,
        speaking_rate: Optional[float] = None,
    ) -> bytes:
        voice: dict[str, str] = {"languageCode": language_code}
        if voice_name:
            voice["name"] = voice_name

        body = {
            "input": {"text": text},
            "voice": voice,
            "audioConfig": {
                "audioEncoding": "MP3",
                "speakingRate": speaking_rate or self.config.tts_speaking_rate,
            },
        }

        started = time.time()
        try:
            resp = await self._client.post(
                "/text:synthesize",
                params={"key": self.config.google_tts_key},
                content=_encoder.encode(body),
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            self._metrics.failed_requests += 1
            raise SynthesisError(f"Synthesis request failed: {e}") from e

        if resp.status_code != 200:
            self._metrics.failed_requests += 1
            raise SynthesisError(
                f"Synthesis returned HTTP {resp.status_code}: {resp.text[:200]}"
            )

        try:
            audio = base64.b64decode(_synthesize_decoder.decode(resp.content).audioContent)
        except (msgspec.DecodeError, ValueError) as e:
            self._metrics.failed_requests += 1
            raise SynthesisError(f"Synthesis response was malformed: {e}") from e

        self._metrics.record_synthesis(
            characters=len(text),
            total_ms=(time.time() - started) * 1000,
        )
        return audio
