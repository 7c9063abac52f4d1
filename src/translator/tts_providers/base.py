from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from src.translator.voices import VoiceDescriptor


class TTSProvider(ABC):
    @abstractmethod
    async def synthesize(
        self,
        text: str,
        *,
        language_code: str,
        voice_name: Optional[str] = None,
        speaking_rate: Optional[float] = None,
    ) -> bytes:
        raise NotImplementedError

    @abstractmethod
    async def list_voices(self) -> list[VoiceDescriptor]:
        raise NotImplementedError

    async def close(self) -> None:
        return None
