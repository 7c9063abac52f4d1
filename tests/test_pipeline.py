"""
Tests for the text and voice-note translation pipeline.
"""

from unittest.mock import AsyncMock

import pytest

from src.translator import pipeline as pipeline_module
from src.translator.audio import NormalizedAudio
from src.translator.config import get_config
from src.translator.errors import FetchError, SynthesisError, TranscriptionError
from src.translator.media import MediaStore
from src.translator.models import Attachment, VoicePreference
from src.translator.pipeline import TranslationPipeline
from src.translator.stt import Transcript
from src.translator.tts_types import SynthesizedAudio

VOICE_NOTE = Attachment(url="https://api.twilio.com/media/ME123", content_type="audio/ogg")


@pytest.fixture
def media_store(tmp_path):
    return MediaStore(str(tmp_path / "media"), "https://test.ngrok.io/media")


@pytest.fixture
def fake_normalize(monkeypatch):
    calls = []

    async def normalize(raw, content_type, workdir, **kwargs):
        calls.append((raw, content_type, workdir))
        path = workdir / "normalized.wav"
        path.write_bytes(b"RIFF")
        return NormalizedAudio(path=path)

    monkeypatch.setattr(pipeline_module, "normalize_audio", normalize)
    return calls


def _pipeline(media_store, *, translator=None, transcriber=None, synthesizer=None, downloader=None):
    return TranslationPipeline(
        translator=translator or AsyncMock(),
        transcriber=transcriber or AsyncMock(),
        synthesizer=synthesizer or AsyncMock(),
        media_store=media_store,
        config=get_config(),
        downloader=downloader or AsyncMock(return_value=b"OggS"),
    )


class TestTextMessages:
    @pytest.mark.asyncio
    async def test_forward_text_goes_to_target(self, media_store, ready_session):
        translator = AsyncMock()
        translator.detect_language.return_value = "es"
        translator.translate.return_value = "Hello, how are you?"
        synthesizer = AsyncMock()

        result = await _pipeline(
            media_store, translator=translator, synthesizer=synthesizer
        ).process_text(ready_session, "Hola, ¿cómo estás?")

        translator.translate.assert_awaited_once_with("Hola, ¿cómo estás?", "en")
        assert result.plan.messages == ["Hello, how are you?"]
        assert not result.plan.has_audio
        synthesizer.synthesize.assert_not_called()
        assert result.record.dest_lang == "en"
        assert result.record.is_audio is False

    @pytest.mark.asyncio
    async def test_reply_text_goes_to_source(self, media_store, ready_session):
        translator = AsyncMock()
        translator.detect_language.return_value = "en"
        translator.translate.return_value = "Estoy bien"

        result = await _pipeline(media_store, translator=translator).process_text(
            ready_session, "I'm fine"
        )

        translator.translate.assert_awaited_once_with("I'm fine", "es")
        assert result.record.detected_lang == "en"

    @pytest.mark.asyncio
    async def test_undetected_language_uses_target(self, media_store, ready_session):
        translator = AsyncMock()
        translator.detect_language.return_value = None
        translator.translate.return_value = "ok"

        await _pipeline(media_store, translator=translator).process_text(ready_session, "ok")

        translator.translate.assert_awaited_once_with("ok", "en")


class TestVoiceNotes:
    @pytest.mark.asyncio
    async def test_voice_note_reply_has_transcript_translation_and_audio(
        self, media_store, ready_session, fake_normalize
    ):
        downloader = AsyncMock(return_value=b"OggS-voice")
        transcriber = AsyncMock()
        transcriber.transcribe.return_value = Transcript(text="I'm running late", language="en")
        translator = AsyncMock()
        translator.translate.return_value = "Voy con retraso"
        synthesizer = AsyncMock()
        synthesizer.synthesize.return_value = SynthesizedAudio(audio_bytes=b"ID3-mp3")
        ready_session.voice_preference = VoicePreference.MALE

        result = await _pipeline(
            media_store,
            translator=translator,
            transcriber=transcriber,
            synthesizer=synthesizer,
            downloader=downloader,
        ).process_audio(ready_session, VOICE_NOTE)

        downloader.assert_awaited_once()
        assert downloader.await_args.kwargs["auth"] == ("ACtest123456789", "test_auth_token")
        assert fake_normalize[0][0] == b"OggS-voice"
        assert fake_normalize[0][1] == "audio/ogg"
        translator.detect_language.assert_not_called()
        translator.translate.assert_awaited_once_with("I'm running late", "es")
        assert synthesizer.synthesize.await_args.args == ("Voy con retraso", "es")
        assert synthesizer.synthesize.await_args.kwargs["voice_preference"] == VoicePreference.MALE
        assert synthesizer.synthesize.await_args.kwargs["speaking_rate"] == ready_session.speaking_rate

        assert result.plan.messages == ["🗣 I'm running late", "🌐 Voy con retraso"]
        assert result.plan.media_url.startswith("https://test.ngrok.io/media/")
        assert result.plan.media_url.endswith(".mp3")
        assert result.record.is_audio is True
        assert result.record.original_text == "I'm running late"

    @pytest.mark.asyncio
    async def test_scratch_files_are_removed(self, media_store, ready_session, fake_normalize):
        transcriber = AsyncMock()
        transcriber.transcribe.return_value = Transcript(text="Hola", language="es")
        translator = AsyncMock()
        translator.translate.return_value = "Hello"
        synthesizer = AsyncMock()
        synthesizer.synthesize.return_value = SynthesizedAudio(audio_bytes=b"mp3")

        await _pipeline(
            media_store, translator=translator, transcriber=transcriber, synthesizer=synthesizer
        ).process_audio(ready_session, VOICE_NOTE)

        workdir = fake_normalize[0][2]
        assert not workdir.exists()

    @pytest.mark.asyncio
    async def test_detects_language_when_transcript_has_none(
        self, media_store, ready_session, fake_normalize
    ):
        transcriber = AsyncMock()
        transcriber.transcribe.return_value = Transcript(text="Hola amigo", language=None)
        translator = AsyncMock()
        translator.detect_language.return_value = "es"
        translator.translate.return_value = "Hello friend"
        synthesizer = AsyncMock()
        synthesizer.synthesize.return_value = SynthesizedAudio(audio_bytes=b"mp3")

        result = await _pipeline(
            media_store, translator=translator, transcriber=transcriber, synthesizer=synthesizer
        ).process_audio(ready_session, VOICE_NOTE)

        translator.detect_language.assert_awaited_once_with("Hola amigo")
        translator.translate.assert_awaited_once_with("Hola amigo", "en")
        assert result.record.detected_lang == "es"

    @pytest.mark.asyncio
    async def test_synthesis_failure_still_replies_with_text(
        self, media_store, ready_session, fake_normalize
    ):
        transcriber = AsyncMock()
        transcriber.transcribe.return_value = Transcript(text="Hola", language="es")
        translator = AsyncMock()
        translator.translate.return_value = "Hello"
        synthesizer = AsyncMock()
        synthesizer.synthesize.side_effect = SynthesisError("all voices failed")

        result = await _pipeline(
            media_store, translator=translator, transcriber=transcriber, synthesizer=synthesizer
        ).process_audio(ready_session, VOICE_NOTE)

        assert result.plan.messages == ["🗣 Hola", "🌐 Hello"]
        assert result.plan.media_url is None

    @pytest.mark.asyncio
    async def test_download_failure_propagates(self, media_store, ready_session, fake_normalize):
        downloader = AsyncMock(side_effect=FetchError("HTTP 404", status_code=404))
        transcriber = AsyncMock()

        with pytest.raises(FetchError):
            await _pipeline(
                media_store, transcriber=transcriber, downloader=downloader
            ).process_audio(ready_session, VOICE_NOTE)

        transcriber.transcribe.assert_not_called()
        assert fake_normalize == []

    @pytest.mark.asyncio
    async def test_transcription_failure_propagates(self, media_store, ready_session, fake_normalize):
        transcriber = AsyncMock()
        transcriber.transcribe.side_effect = TranscriptionError("both models failed")
        translator = AsyncMock()

        with pytest.raises(TranscriptionError):
            await _pipeline(
                media_store, translator=translator, transcriber=transcriber
            ).process_audio(ready_session, VOICE_NOTE)

        translator.translate.assert_not_called()
