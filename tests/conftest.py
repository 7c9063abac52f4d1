"""
Pytest configuration and fixtures.
"""

import os
from dataclasses import replace
from typing import Dict, List, Optional
from unittest.mock import patch

import pytest

from src.translator.models import ContactSession, Step, TranslationRecord


@pytest.fixture(autouse=True)
def mock_env_vars(tmp_path):
    """Mock environment variables for tests."""
    env_vars = {
        "PUBLIC_HOST": "test.ngrok.io",
        "PORT": "8080",
        "LOG_LEVEL": "DEBUG",
        "TWILIO_ACCOUNT_SID": "ACtest123456789",
        "TWILIO_AUTH_TOKEN": "test_auth_token",
        "TWILIO_WHATSAPP_FROM": "+14155238886",
        "OPENAI_API_KEY": "test_openai_key",
        "GOOGLE_TTS_KEY": "test_google_key",
        "LLM_PROVIDER": "openai",
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "MEDIA_DIR": str(tmp_path / "media"),
        "FREE_MESSAGE_LIMIT": "50",
        "UNKNOWN_LANGUAGE_POLICY": "target",
        "VOICE_PREFERENCE_STEP": "true",
    }

    with patch.dict(os.environ, env_vars):
        # Clear config cache
        from src.translator.config import get_config
        get_config.cache_clear()
        yield
        get_config.cache_clear()


class InMemorySessionStore:
    """Dict-backed stand-in for SessionStore."""

    def __init__(self) -> None:
        self.sessions: Dict[str, ContactSession] = {}
        self.records: List[TranslationRecord] = []
        self.upserts = 0

    async def load(self, contact_id: str) -> Optional[ContactSession]:
        session = self.sessions.get(contact_id)
        return replace(session) if session else None

    async def upsert(self, session: ContactSession) -> ContactSession:
        self.upserts += 1
        self.sessions[session.contact_id] = replace(session)
        return session

    async def insert_record(self, record: TranslationRecord) -> None:
        self.records.append(record)


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def ready_session():
    """A contact who receives Spanish and sends English."""
    return ContactSession(
        contact_id="whatsapp:+15551234567",
        step=Step.READY,
        source_lang="es",
        target_lang="en",
    )


@pytest.fixture
def sample_wav_bytes():
    """Tiny RIFF header + silence; content is irrelevant to mocked ffmpeg."""
    return b"RIFF" + b"\x00" * 40 + b"\x00\x00" * 160
