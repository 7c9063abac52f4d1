"""
Tests for LLM translation and language detection.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.translator.config import get_config
from src.translator.errors import TranslationError
from src.translator.llm import GROQ_BASE_URL, Translator


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _translator(create):
    client = MagicMock()
    client.chat.completions.create = create
    return Translator(get_config(), client=client)


class TestTranslate:
    @pytest.mark.asyncio
    async def test_returns_translation(self):
        create = AsyncMock(return_value=_completion("Hello, how are you?"))

        result = await _translator(create).translate("Hola, ¿cómo estás?", "en")

        assert result == "Hello, how are you?"
        kwargs = create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0
        assert "English" in kwargs["messages"][0]["content"]
        assert kwargs["messages"][1]["content"] == "Hola, ¿cómo estás?"

    @pytest.mark.asyncio
    async def test_strips_wrapping_quotes(self):
        create = AsyncMock(return_value=_completion('"Bonjour"'))
        assert await _translator(create).translate("Hello", "fr") == "Bonjour"

    @pytest.mark.asyncio
    async def test_empty_output_raises(self):
        create = AsyncMock(return_value=_completion("   "))
        with pytest.raises(TranslationError):
            await _translator(create).translate("Hello", "fr")

    @pytest.mark.asyncio
    async def test_request_failure_raises(self):
        create = AsyncMock(side_effect=RuntimeError("rate limited"))
        with pytest.raises(TranslationError):
            await _translator(create).translate("Hello", "fr")


class TestDetectLanguage:
    @pytest.mark.asyncio
    async def test_returns_code(self):
        create = AsyncMock(return_value=_completion("es"))
        assert await _translator(create).detect_language("Hola amigo") == "es"

    @pytest.mark.asyncio
    async def test_unknown_answer(self):
        create = AsyncMock(return_value=_completion("unknown"))
        assert await _translator(create).detect_language("asdf qwer") is None

    @pytest.mark.asyncio
    async def test_failure_is_not_fatal(self):
        create = AsyncMock(side_effect=RuntimeError("timeout"))
        assert await _translator(create).detect_language("Hola") is None


class TestProviderSelection:
    def test_groq_provider(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "groq")
        monkeypatch.setenv("GROQ_API_KEY", "test_groq_key")
        get_config.cache_clear()

        translator = Translator(get_config(), client=MagicMock())

        assert translator.base_url == GROQ_BASE_URL
        assert translator.model == get_config().groq_model
