"""
Configuration management for the WhatsApp Voice Translator.

Loads environment variables and provides a strongly-typed configuration object.
Validates required keys at startup.
"""

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv
import structlog

load_dotenv()

logger = structlog.get_logger(__name__)


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


@dataclass(frozen=True)
class Config:
    """Strongly-typed configuration object."""

    # Server
    public_host: str
    port: int = 8080
    log_level: str = "INFO"

    # Twilio (WhatsApp)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_whatsapp_from: str = ""

    # LLM Provider (Groq/OpenAI) used for translation + language detection
    llm_provider: str = "openai"  # "groq" | "openai"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    groq_api_key: str = ""
    groq_model: str = "llama-3.3-70b-versatile"

    # OpenAI (STT)
    stt_primary_model: str = "gpt-4o-transcribe"
    stt_fallback_model: str = "whisper-1"

    # Google Cloud Text-to-Speech
    google_tts_key: str = ""
    tts_default_voice: str = "en-US-Standard-C"
    tts_default_language: str = "en-US"
    tts_speaking_rate: float = 0.9
    tts_slow_speaking_rate: float = 0.8

    # Storage
    database_url: str = "sqlite+aiosqlite:///./translator.db"
    media_dir: str = "./media"
    media_ttl_seconds: int = 3600

    # Conversation behaviour
    # - unknown_language_policy: which stored language receives the translation
    #   when the incoming language can't be detected ("target" or "source")
    free_message_limit: int = 50
    unknown_language_policy: str = "target"
    voice_preference_step: bool = True

    # Dispatcher
    serialize_per_contact: bool = True
    dispatcher_workers: int = 4
    http_timeout_seconds: float = 30.0

    @property
    def base_url(self) -> str:
        """Get the base HTTP URL."""
        return f"https://{self.public_host}"

    @property
    def media_base_url(self) -> str:
        """Public URL prefix Twilio uses to fetch synthesized audio."""
        return f"{self.base_url}/media"

    def validate(self) -> None:
        """Validate that all required configuration is present."""
        missing = []

        if not self.public_host:
            missing.append("PUBLIC_HOST")
        if not self.twilio_account_sid:
            missing.append("TWILIO_ACCOUNT_SID")
        if not self.twilio_auth_token:
            missing.append("TWILIO_AUTH_TOKEN")
        if not self.twilio_whatsapp_from:
            missing.append("TWILIO_WHATSAPP_FROM")
        if not self.openai_api_key:
            # Transcription always goes through OpenAI.
            missing.append("OPENAI_API_KEY")
        if not self.google_tts_key:
            missing.append("GOOGLE_TTS_KEY")

        provider = (self.llm_provider or "openai").strip().lower()
        if provider not in ("groq", "openai"):
            raise ConfigError(
                f"Invalid LLM_PROVIDER '{self.llm_provider}'. Expected 'groq' or 'openai'."
            )

        if provider == "groq":
            if not self.groq_api_key:
                missing.append("GROQ_API_KEY")
            if not self.groq_model:
                missing.append("GROQ_MODEL")

        if provider == "openai" and not self.openai_model:
            missing.append("OPENAI_MODEL")

        if self.unknown_language_policy not in ("target", "source"):
            raise ConfigError(
                f"Invalid UNKNOWN_LANGUAGE_POLICY '{self.unknown_language_policy}'. "
                "Expected 'target' or 'source'."
            )

        if missing:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(missing)}\n"
                "Please check your .env file."
            )

    def log_config(self) -> None:
        """Log configuration (without secrets)."""
        logger.info(
            "Configuration loaded",
            public_host=self.public_host,
            port=self.port,
            log_level=self.log_level,
            twilio_whatsapp_from=self.twilio_whatsapp_from,
            llm_provider=self.llm_provider,
            llm_model=self.openai_model if self.llm_provider == "openai" else self.groq_model,
            stt_primary_model=self.stt_primary_model,
            stt_fallback_model=self.stt_fallback_model,
            tts_default_voice=self.tts_default_voice,
            tts_speaking_rate=self.tts_speaking_rate,
            tts_slow_speaking_rate=self.tts_slow_speaking_rate,
            database_url=self.database_url.split("@")[-1],
            media_dir=self.media_dir,
            free_message_limit=self.free_message_limit,
            unknown_language_policy=self.unknown_language_policy,
            voice_preference_step=self.voice_preference_step,
            serialize_per_contact=self.serialize_per_contact,
            dispatcher_workers=self.dispatcher_workers,
            twilio_sid_prefix=self.twilio_account_sid[:6] + "..." if self.twilio_account_sid else "NOT SET",
            openai_key_set=bool(self.openai_api_key),
            groq_key_set=bool(self.groq_api_key),
            google_tts_key_set=bool(self.google_tts_key),
        )


def _get_bool(key: str, default: bool = False) -> bool:
    """Get a boolean from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


def _get_int(key: str, default: int) -> int:
    """Get an integer from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def _get_float(key: str, default: float) -> float:
    """Get a float from environment variable."""
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the application configuration.

    Uses lru_cache to ensure we only load config once.
    """
    config = Config(
        # Server
        public_host=os.getenv("PUBLIC_HOST", ""),
        port=_get_int("PORT", 8080),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),

        # Twilio
        twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
        twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
        twilio_whatsapp_from=os.getenv("TWILIO_WHATSAPP_FROM", ""),

        # LLM Provider
        llm_provider=os.getenv("LLM_PROVIDER", "openai").strip().lower(),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        groq_api_key=os.getenv("GROQ_API_KEY", ""),
        groq_model=os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile"),

        # STT
        stt_primary_model=os.getenv("STT_PRIMARY_MODEL", "gpt-4o-transcribe"),
        stt_fallback_model=os.getenv("STT_FALLBACK_MODEL", "whisper-1"),

        # TTS
        google_tts_key=os.getenv("GOOGLE_TTS_KEY", ""),
        tts_default_voice=os.getenv("TTS_DEFAULT_VOICE", "en-US-Standard-C"),
        tts_default_language=os.getenv("TTS_DEFAULT_LANGUAGE", "en-US"),
        tts_speaking_rate=_get_float("TTS_SPEAKING_RATE", 0.9),
        tts_slow_speaking_rate=_get_float("TTS_SLOW_SPEAKING_RATE", 0.8),

        # Storage
        database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./translator.db"),
        media_dir=os.getenv("MEDIA_DIR", "./media"),
        media_ttl_seconds=_get_int("MEDIA_TTL_SECONDS", 3600),

        # Conversation behaviour
        free_message_limit=_get_int("FREE_MESSAGE_LIMIT", 50),
        unknown_language_policy=os.getenv("UNKNOWN_LANGUAGE_POLICY", "target").strip().lower(),
        voice_preference_step=_get_bool("VOICE_PREFERENCE_STEP", True),

        # Dispatcher
        serialize_per_contact=_get_bool("SERIALIZE_PER_CONTACT", True),
        dispatcher_workers=max(1, _get_int("DISPATCHER_WORKERS", 4)),
        http_timeout_seconds=_get_float("HTTP_TIMEOUT_SECONDS", 30.0),
    )

    return config


def init_config() -> Config:
    """
    Initialize and validate configuration.

    Call this at application startup to fail fast if config is invalid.
    """
    config = get_config()
    config.validate()
    config.log_config()
    return config
