"""
Error taxonomy for message processing.

Only `SynthesisError` is recovered inside the pipeline (the reply goes out as
text only). Everything else aborts the current message and is turned into a
generic error reply by the dispatcher.
"""

from __future__ import annotations

from typing import Optional


class TranslatorError(Exception):
    """Base class for failures while processing one inbound message."""


class FetchError(TranslatorError):
    """Downloading a media attachment or the voice catalog failed."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TranscodeError(TranslatorError):
    """ffmpeg could not normalize the audio attachment."""


class TranscriptionError(TranslatorError):
    """Both transcription models failed."""


class TranslationError(TranslatorError):
    """The translation call failed or returned nothing usable."""


class SynthesisError(TranslatorError):
    """Every speech synthesis fallback failed."""


class PersistenceError(TranslatorError):
    """Loading or writing session / translation state failed."""
