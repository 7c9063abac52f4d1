"""
Voice note handling: download from Twilio and normalize with ffmpeg.

WhatsApp voice notes arrive as OGG/Opus (sometimes AMR or MP4 from older
clients). Every input is converted to a canonical mono 16kHz PCM WAV before it
is handed to speech recognition.
"""

from __future__ import annotations

import asyncio
import shutil
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional, Tuple

import httpx
import structlog

from src.translator.errors import FetchError, TranscodeError

logger = structlog.get_logger(__name__)

CANONICAL_SAMPLE_RATE = 16000
CANONICAL_CHANNELS = 1
FALLBACK_EXTENSION = ".bin"

_EXTENSIONS = {
    "audio/ogg": ".ogg",
    "audio/opus": ".opus",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/mp4": ".m4a",
    "audio/m4a": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/aac": ".aac",
    "audio/amr": ".amr",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/webm": ".webm",
    "video/mp4": ".mp4",
}


@dataclass(frozen=True)
class NormalizedAudio:
    """A canonical WAV file on disk, owned by a `temporary_audio()` scope."""

    path: Path
    sample_rate: int = CANONICAL_SAMPLE_RATE
    channels: int = CANONICAL_CHANNELS


def extension_for_content_type(content_type: Optional[str]) -> str:
    """
    Pick a working file extension from a media content type.

    Parameters such as `; codecs=opus` are ignored. Unknown or missing types get
    a generic extension and ffmpeg probes the container itself.
    """
    if not content_type:
        return FALLBACK_EXTENSION
    mime = content_type.split(";", 1)[0].strip().lower()
    return _EXTENSIONS.get(mime, FALLBACK_EXTENSION)


async def download_media(
    url: str,
    *,
    auth: Optional[Tuple[str, str]] = None,
    timeout: float = 30.0,
    client: Optional[httpx.AsyncClient] = None,
) -> bytes:
    """
    Download an attachment. Single attempt; any failure raises FetchError.

    Twilio media URLs require basic auth with the account SID and token and
    redirect to a signed storage URL.
    """
    try:
        if client is not None:
            resp = await client.get(url, auth=auth, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(timeout)) as owned:
                resp = await owned.get(url, auth=auth, follow_redirects=True)
    except httpx.HTTPError as e:
        logger.warning("Media download failed", error_type=type(e).__name__, error=str(e))
        raise FetchError(f"Media download failed: {e}") from e

    if resp.status_code < 200 or resp.status_code >= 300:
        logger.warning("Media download returned error status", status_code=resp.status_code)
        raise FetchError(
            f"Media download returned HTTP {resp.status_code}",
            status_code=resp.status_code,
        )

    logger.debug("Media downloaded", size_bytes=len(resp.content))
    return resp.content


@asynccontextmanager
async def temporary_audio() -> AsyncIterator[Path]:
    """
    Scratch directory for one message's audio files.

    Everything inside is removed when the block exits, whether processing
    succeeded or raised.
    """
    workdir = Path(tempfile.mkdtemp(prefix="translator-audio-"))
    try:
        yield workdir
    finally:
        shutil.rmtree(workdir, ignore_errors=True)


async def normalize_audio(
    raw: bytes,
    content_type: Optional[str],
    workdir: Path,
    *,
    ffmpeg_binary: str = "ffmpeg",
) -> NormalizedAudio:
    """
    Convert raw attachment bytes into mono 16kHz PCM WAV inside `workdir`.
    """
    if not raw:
        raise TranscodeError("Empty audio payload")

    input_path = workdir / f"input{extension_for_content_type(content_type)}"
    output_path = workdir / "normalized.wav"
    input_path.write_bytes(raw)

    try:
        proc = await asyncio.create_subprocess_exec(
            ffmpeg_binary, "-y", "-hide_banner", "-loglevel", "error",
            "-i", str(input_path),
            "-ar", str(CANONICAL_SAMPLE_RATE),
            "-ac", str(CANONICAL_CHANNELS),
            "-f", "wav",
            str(output_path),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await proc.communicate()
    except OSError as e:
        logger.error("ffmpeg could not be started", error=str(e))
        raise TranscodeError(f"ffmpeg could not be started: {e}") from e

    if proc.returncode != 0:
        detail = (stderr or b"").decode("utf-8", errors="replace").strip()[-300:]
        logger.warning(
            "ffmpeg transcode failed",
            returncode=proc.returncode,
            content_type=content_type,
            stderr=detail,
        )
        raise TranscodeError(f"ffmpeg exited with {proc.returncode}: {detail}")

    if not output_path.exists() or output_path.stat().st_size == 0:
        raise TranscodeError("ffmpeg produced no output")

    return NormalizedAudio(path=output_path)
