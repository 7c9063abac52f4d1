"""
Short-lived hosting for synthesized audio.

Twilio fetches outbound media by URL, so each reply's MP3 is written under
MEDIA_DIR and served by `GET /media/{name}` until it ages out.
"""

from __future__ import annotations

import re
import time
import uuid
from pathlib import Path
from typing import Optional

import structlog

from src.translator.tts_types import SynthesizedAudio

logger = structlog.get_logger(__name__)

_EXTENSIONS = {
    "audio/mpeg": ".mp3",
    "audio/ogg": ".ogg",
    "audio/wav": ".wav",
}

_SAFE_NAME = re.compile(r"^[a-f0-9]{32}\.(mp3|ogg|wav)$")


class MediaStore:
    def __init__(self, directory: str, base_url: str, ttl_seconds: int = 3600):
        self.directory = Path(directory)
        self.base_url = base_url.rstrip("/")
        self.ttl_seconds = ttl_seconds

    def save(self, audio: SynthesizedAudio) -> str:
        """Persist audio and return its public URL."""
        self.directory.mkdir(parents=True, exist_ok=True)
        self.prune()

        name = uuid.uuid4().hex + _EXTENSIONS.get(audio.mime_type, ".mp3")
        (self.directory / name).write_bytes(audio.audio_bytes)
        logger.debug("Media saved", name=name, size_bytes=len(audio.audio_bytes))
        return f"{self.base_url}/{name}"

    def resolve(self, name: str) -> Optional[Path]:
        """Path for a served file name, or None if unknown/expired/unsafe."""
        if not _SAFE_NAME.match(name or ""):
            return None
        path = self.directory / name
        if not path.is_file():
            return None
        if time.time() - path.stat().st_mtime > self.ttl_seconds:
            return None
        return path

    def prune(self) -> int:
        if not self.directory.exists():
            return 0

        cutoff = time.time() - self.ttl_seconds
        removed = 0
        for path in self.directory.iterdir():
            try:
                if path.is_file() and path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError as e:
                logger.warning("Failed to prune media file", name=path.name, error=str(e))
        if removed:
            logger.info("Pruned expired media", removed=removed)
        return removed
