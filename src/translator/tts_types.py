from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class SynthesizedAudio:
    """
    A complete synthesized utterance.

    `audio_bytes` is MP3 unless `mime_type` says otherwise; WhatsApp plays it
    inline as a voice message.
    """

    audio_bytes: bytes
    mime_type: str = "audio/mpeg"
    voice_name: Optional[str] = None
    language_code: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    # Optional: structured metadata for debugging/metrics.
    meta: Optional[dict[str, Any]] = None
