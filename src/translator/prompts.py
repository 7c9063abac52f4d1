"""
User-facing reply texts.

Kept in one place so the session engine stays about state, not wording.
"""

from __future__ import annotations

from typing import Optional

from src.translator.language import SUPPORTED_LANGUAGES, language_name
from src.translator.models import VoicePreference, VoiceSpeed

RESET_KEYWORDS = ("reset", "change language")

_KEYCAPS = {str(d): f"{d}️⃣" for d in range(10)}


def language_menu(title: str) -> str:
    lines = [
        f"{_KEYCAPS.get(lang.digit, lang.digit)} {lang.name} ({lang.code})"
        for lang in SUPPORTED_LANGUAGES
    ]
    return f"{title}\n\n" + "\n".join(lines)


def source_menu(prefix: Optional[str] = None) -> str:
    title = "Pick the language you RECEIVE:"
    if prefix:
        title = f"{prefix}\n{title}"
    return language_menu(title)


def target_menu() -> str:
    return language_menu("✅ Now pick the language I should SEND:")


def welcome() -> str:
    return source_menu("👋 Welcome! I translate your texts and voice notes.")


def reset_done() -> str:
    return source_menu("🔄 Setup reset!")


def invalid_choice() -> str:
    return f"❌ Reply 1-{len(SUPPORTED_LANGUAGES)}."


def languages_menu() -> str:
    return language_menu("Languages:")


def must_differ() -> str:
    return "⚠️ Target must differ from source. Pick again."


def voice_menu() -> str:
    return (
        "🔉 Which voice should I use for audio replies?\n"
        "1️⃣ Male\n"
        "2️⃣ Female\n"
        "3️⃣ No preference"
    )


def invalid_voice_choice() -> str:
    return "❌ Reply 1, 2 or 3."


def speed_menu(slow_rate: float) -> str:
    return (
        "🔉 Choose voice speed:\n"
        "1️⃣ Normal\n"
        f"2️⃣ Slow ({round(slow_rate * 100)}%)"
    )


def invalid_speed_choice() -> str:
    return "❌ Reply 1 or 2."


def setup_complete(
    source_lang: str,
    target_lang: str,
    voice: Optional[VoicePreference],
    speed: Optional[VoiceSpeed] = None,
) -> str:
    voice_line = f"\nVoice: {voice.value}" if voice else ""
    speed_line = f"\nSpeed: {speed.value}" if speed else ""
    return (
        "✅ All set!\n"
        f"{language_name(source_lang)} ⇄ {language_name(target_lang)}{voice_line}{speed_line}\n\n"
        "Send me a text or a voice note and I'll translate it. "
        f"Send \"{RESET_KEYWORDS[0]}\" any time to start over."
    )


def setup_incomplete() -> str:
    return f"⚠️ Setup incomplete. Send \"{RESET_KEYWORDS[0]}\" to start again."


def unsupported_message() -> str:
    return "📎 Please send text or a voice note."


def paywall(limit: int) -> str:
    return (
        f"🚫 You've used your {limit} free translations.\n"
        "Upgrade to keep translating without limits."
    )


def generic_error() -> str:
    return "⚠️ An error occurred while processing your message. Please try again."


def transcript_line(text: str) -> str:
    return f"🗣 {text}"


def translation_line(text: str) -> str:
    return f"🌐 {text}"
