"""
LLM-backed translation and language detection.

Uses the OpenAI-compatible chat completions API, either against OpenAI or
against Groq's OpenAI-compatible endpoint (LLM_PROVIDER).

Provides:
- Startup model validation (smoke test)
- translate(): text -> destination language, translation only
- detect_language(): text -> two-letter ISO code (best effort)
"""

from __future__ import annotations

import time
from typing import Any, Optional

import httpx
import structlog
from openai import AsyncOpenAI

from src.translator.config import get_config
from src.translator.errors import TranslationError
from src.translator.language import language_name, normalize_detected_language

logger = structlog.get_logger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
OPENAI_BASE_URL = "https://api.openai.com/v1"


def translation_prompt(dest_lang: str) -> str:
    return (
        "You are a translation engine inside a chat app.\n"
        f"Translate the user's message into {language_name(dest_lang)} (ISO code: {dest_lang}).\n"
        "Return ONLY the translated text: no quotes, no notes, no explanations.\n"
        "Keep names, numbers, emojis and line breaks as they are."
    )


DETECTION_PROMPT = (
    "Identify the language of the user's message.\n"
    "Answer with the two-letter ISO 639-1 code only (for example: en, es, fr).\n"
    "If you cannot tell, answer: unknown"
)


def _strip_wrapping_quotes(text: str) -> str:
    text = text.strip()
    for quote in ('"', "'", "“", "«"):
        closing = {"“": "”", "«": "»"}.get(quote, quote)
        if len(text) >= 2 and text.startswith(quote) and text.endswith(closing):
            return text[1:-1].strip()
    return text


async def validate_llm_model(base_url: str, api_key: str, model_name: str) -> bool:
    """
    Check that the configured chat model exists for this API key.

    Returns True if the model is listed, False otherwise.
    """
    logger.info("Validating LLM model", model=model_name, base_url=base_url)

    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(
                f"{base_url}/models",
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=10.0,
            )
        except httpx.RequestError as e:
            logger.error("Failed to connect to LLM API", error=str(e))
            return False

    if response.status_code != 200:
        logger.error(
            "Failed to fetch models",
            status_code=response.status_code,
            response=response.text[:200],
        )
        return False

    model_ids = [m.get("id") for m in response.json().get("data", [])]
    if model_name not in model_ids:
        logger.error(
            "LLM model not found",
            requested_model=model_name,
            available_models=", ".join(sorted(i for i in model_ids if i)[:10]),
        )
        return False

    logger.info("LLM model validated successfully", model=model_name)
    return True


class Translator:
    """
    Translation + language detection client.

    Not retried: a failed translation aborts the message and the contact gets
    the generic error reply.
    """

    def __init__(self, config: Optional[Any] = None, client: Optional[AsyncOpenAI] = None):
        if config is None:
            config = get_config()

        self.config = config
        provider = (config.llm_provider or "openai").strip().lower()
        if provider == "groq":
            self.model = config.groq_model
            self.base_url = GROQ_BASE_URL
            api_key = config.groq_api_key
        else:
            self.model = config.openai_model
            self.base_url = OPENAI_BASE_URL
            api_key = config.openai_api_key

        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=config.http_timeout_seconds,
        )

    async def validate_model(self) -> bool:
        """Validate the configured model exists."""
        return await validate_llm_model(self.base_url, self._client.api_key, self.model)

    async def _complete(self, system_prompt: str, user_message: str, *, max_tokens: int) -> str:
        resp = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            max_tokens=max_tokens,
            temperature=0,
        )
        if not resp.choices:
            return ""
        return (resp.choices[0].message.content or "").strip()

    async def translate(self, text: str, dest_lang: str) -> str:
        """Translate `text` into `dest_lang`. Raises TranslationError."""
        if not text or not text.strip():
            raise TranslationError("Nothing to translate")

        started = time.time()
        try:
            content = await self._complete(
                translation_prompt(dest_lang),
                text,
                max_tokens=max(256, len(text) * 2),
            )
        except Exception as e:
            logger.error("Translation request failed", dest_lang=dest_lang, error=str(e))
            raise TranslationError(f"Translation request failed: {e}") from e

        translated = _strip_wrapping_quotes(content)
        if not translated:
            logger.error("Translation returned empty output", dest_lang=dest_lang)
            raise TranslationError("Translation returned empty output")

        logger.info(
            "Translation complete",
            dest_lang=dest_lang,
            chars_in=len(text),
            chars_out=len(translated),
            latency_ms=round((time.time() - started) * 1000, 2),
        )
        return translated

    async def detect_language(self, text: str) -> Optional[str]:
        """
        Best-effort language detection.

        Returns a two-letter code, or None when the model can't tell or the call
        fails; the resolver's unknown-language policy then applies.
        """
        if not text or not text.strip():
            return None

        try:
            content = await self._complete(DETECTION_PROMPT, text[:1000], max_tokens=5)
        except Exception as e:
            logger.warning("Language detection failed", error=str(e))
            return None

        code = normalize_detected_language(content.split()[0] if content else "")
        logger.debug("Language detected", raw=content[:20], language=code)
        return code
