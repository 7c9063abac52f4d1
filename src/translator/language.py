"""
Language utilities for the translator.

Provides a small, deterministic layer for:
- matching a user's menu reply to one of the supported languages
- normalizing detector / STT language labels into two-letter codes
- resolving which of a contact's two languages a translation goes to
"""

from __future__ import annotations

from dataclasses import dataclass
import re
import unicodedata
from typing import Optional, Protocol, Union


@dataclass(frozen=True)
class Language:
    digit: str
    name: str
    code: str


# Pilot language menu. Order is the numbered menu shown to contacts.
SUPPORTED_LANGUAGES: tuple[Language, ...] = (
    Language(digit="1", name="English", code="en"),
    Language(digit="2", name="Spanish", code="es"),
    Language(digit="3", name="French", code="fr"),
    Language(digit="4", name="Portuguese", code="pt"),
    Language(digit="5", name="German", code="de"),
)

_BY_CODE = {lang.code: lang for lang in SUPPORTED_LANGUAGES}

# Whisper's verbose_json reports full lowercase names ("spanish").
_NAME_TO_CODE = {
    "english": "en",
    "spanish": "es",
    "espanol": "es",
    "castilian": "es",
    "french": "fr",
    "francais": "fr",
    "portuguese": "pt",
    "portugues": "pt",
    "german": "de",
    "deutsch": "de",
    "italian": "it",
    "dutch": "nl",
    "russian": "ru",
    "chinese": "zh",
    "japanese": "ja",
    "korean": "ko",
    "arabic": "ar",
    "hindi": "hi",
    "turkish": "tr",
    "polish": "pl",
    "ukrainian": "uk",
}

_CODE_RE = re.compile(r"^([a-z]{2})(?:[-_][a-z0-9]+)*$")


def normalize_for_matching(text: str) -> str:
    text = (text or "").strip().lower()
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"\s+", " ", text)
    return text


def language_name(code: Optional[str]) -> str:
    lang = _BY_CODE.get((code or "").lower())
    return lang.name if lang else (code or "?")


@dataclass(frozen=True)
class LanguageChoice:
    language: Language

    @property
    def code(self) -> str:
        return self.language.code


@dataclass(frozen=True)
class NoMatch:
    text: str


MenuResult = Union[LanguageChoice, NoMatch]


def match_language(text: str) -> MenuResult:
    """
    Match a menu reply against the supported languages.

    Accepts the menu digit ("2", also "2." or "2️⃣"), the two-letter code ("es")
    or the language name ("Spanish"), case-insensitively.
    """
    normalized = normalize_for_matching(text)
    if not normalized:
        return NoMatch(text=text or "")

    digit = re.match(r"^(\d)", normalized)
    if digit:
        for lang in SUPPORTED_LANGUAGES:
            if lang.digit == digit.group(1):
                return LanguageChoice(lang)

    for lang in SUPPORTED_LANGUAGES:
        if normalized == lang.code or normalized == lang.name.lower():
            return LanguageChoice(lang)

    return NoMatch(text=text)


def normalize_detected_language(detected_language: Optional[str]) -> Optional[str]:
    """
    Normalize a detector/STT language label into a two-letter code.

    Handles locale codes ("es-ES", "pt_BR"), bare codes ("fr") and full names
    ("spanish", "Français"). Returns None for empty or unrecognized labels.
    """
    if not detected_language:
        return None

    norm = normalize_for_matching(detected_language).strip(" .\"'`")
    if not norm or norm in ("unknown", "und", "none", "null"):
        return None

    if norm in _NAME_TO_CODE:
        return _NAME_TO_CODE[norm]

    match = _CODE_RE.match(norm)
    if match:
        return match.group(1)

    return None


class LanguagePair(Protocol):
    source_lang: Optional[str]
    target_lang: Optional[str]


def resolve_destination(
    detected_language: Optional[str],
    session: LanguagePair,
    *,
    unknown_policy: str = "target",
) -> str:
    """
    Decide which of the contact's two languages a translation goes to.

    Rules, first match wins:
    1. unknown/empty detection -> target (or source with unknown_policy="source")
    2. detected == target      -> source (the contact is replying)
    3. detected == source      -> target (a forward message)
    4. any other language      -> source (never an uninvolved language)
    """
    source = session.source_lang
    target = session.target_lang
    if not source or not target or source == target:
        raise ValueError("resolve_destination requires two distinct languages")

    detected = normalize_detected_language(detected_language)

    if detected is None:
        return source if unknown_policy == "source" else target
    if detected == target:
        return source
    if detected == source:
        return target
    return source
