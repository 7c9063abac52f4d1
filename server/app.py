"""
FastAPI server for the WhatsApp Voice Translator.

Endpoints:
- POST /webhook: Twilio WhatsApp webhook (acknowledges with empty TwiML)
- GET /healthz: Plain liveness probe
- GET /health: Health check
- GET /metrics: JSON metrics
- GET /media/{name}: Synthesized audio served to Twilio
"""

import asyncio
import sys
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import logging

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
import structlog
import uvicorn

from src.translator.config import Config, ConfigError, get_config, init_config
from src.translator.dispatcher import MessageDispatcher
from src.translator.errors import FetchError, PersistenceError
from src.translator.llm import Translator
from src.translator.media import MediaStore
from src.translator.messaging import TwilioMessenger, empty_twiml, mask_address
from src.translator.models import Attachment, InboundMessage
from src.translator.pipeline import TranslationPipeline
from src.translator.session import SessionStateMachine
from src.translator.store import SessionStore
from src.translator.stt import Transcriber
from src.translator.tts import SpeechSynthesizer
from src.translator.tts_providers.google import GoogleTTS
from src.translator.voices import VoiceCatalog


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if log_level != "DEBUG" else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


logger = structlog.get_logger(__name__)


@dataclass
class ServerMetrics:
    """Server-wide metrics."""
    start_time: float = field(default_factory=time.time)
    webhooks_received: int = 0
    text_messages: int = 0
    media_messages: int = 0
    ignored_webhooks: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uptime_seconds": round(time.time() - self.start_time, 2),
            "webhooks_received": self.webhooks_received,
            "text_messages": self.text_messages,
            "media_messages": self.media_messages,
            "ignored_webhooks": self.ignored_webhooks,
            "errors": self.errors,
        }


# Global metrics
metrics = ServerMetrics()


@dataclass
class Services:
    """Everything the webhook needs, built once per process."""
    store: SessionStore
    tts_provider: GoogleTTS
    voice_catalog: VoiceCatalog
    media: MediaStore
    dispatcher: MessageDispatcher


def build_services(config: Config) -> Services:
    store = SessionStore.from_url(config.database_url)
    tts_provider = GoogleTTS(config)
    voice_catalog = VoiceCatalog(tts_provider)
    media = MediaStore(config.media_dir, config.media_base_url, config.media_ttl_seconds)

    pipeline = TranslationPipeline(
        translator=Translator(config),
        transcriber=Transcriber(config),
        synthesizer=SpeechSynthesizer(tts_provider, voice_catalog, config),
        media_store=media,
        config=config,
    )
    engine = SessionStateMachine(store, pipeline, config)
    dispatcher = MessageDispatcher(engine, TwilioMessenger(config), config)

    return Services(
        store=store,
        tts_provider=tts_provider,
        voice_catalog=voice_catalog,
        media=media,
        dispatcher=dispatcher,
    )


async def _warm_voice_catalog(catalog: VoiceCatalog) -> None:
    try:
        await catalog.load()
    except FetchError as e:
        # Synthesis still works with language-only and default voices; retried lazily.
        logger.warning("Voice catalog warm-up failed", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting WhatsApp translator server...")

    try:
        config = init_config()
        configure_logging(config.log_level)

        services = build_services(config)
        await services.store.init_models()
        await services.dispatcher.start()

        app.state.services = services
        app.state.dispatcher = services.dispatcher
        app.state.media = services.media
        app.state.warmup = asyncio.create_task(_warm_voice_catalog(services.voice_catalog))

        logger.info(
            "Server ready",
            port=config.port,
            public_host=config.public_host,
            webhook_url=f"{config.base_url}/webhook",
        )

    except ConfigError as e:
        logger.error("Configuration error", error=str(e))
        sys.exit(1)
    except PersistenceError as e:
        logger.error("Database initialization failed", error=str(e))
        sys.exit(1)
    except SystemExit:
        raise
    except Exception as e:
        logger.error("Startup failed", error=str(e))
        sys.exit(1)

    yield

    # Shutdown
    logger.info("Shutting down server...")
    await services.dispatcher.stop()

    warmup: asyncio.Task = app.state.warmup
    if not warmup.done():
        warmup.cancel()
        try:
            await warmup
        except asyncio.CancelledError:
            pass

    await services.tts_provider.close()
    await services.store.close()


# Create FastAPI app
app = FastAPI(
    title="WhatsApp Voice Translator",
    description="Translates WhatsApp texts and voice notes between two languages",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/healthz")
async def healthz() -> PlainTextResponse:
    """Liveness probe."""
    return PlainTextResponse("OK")


@app.get("/health")
async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint."""
    dispatcher: Optional[MessageDispatcher] = getattr(request.app.state, "dispatcher", None)
    return JSONResponse(
        content={
            "status": "healthy",
            "timestamp": time.time(),
            "pending_messages": dispatcher.pending if dispatcher else 0,
        }
    )


@app.get("/metrics")
async def get_metrics(request: Request) -> JSONResponse:
    """Metrics endpoint."""
    data = metrics.to_dict()
    dispatcher: Optional[MessageDispatcher] = getattr(request.app.state, "dispatcher", None)
    if dispatcher:
        data.update(
            processed_messages=dispatcher.processed,
            failed_messages=dispatcher.failed,
            pending_messages=dispatcher.pending,
        )
    return JSONResponse(content=data)


@app.post("/webhook")
async def whatsapp_webhook(request: Request) -> Response:
    """
    Twilio WhatsApp webhook.

    Acknowledges immediately with an empty TwiML response; the translation
    reply is sent later by the dispatcher as a separate outbound message.
    """
    form = await request.form()
    metrics.webhooks_received += 1

    contact_id = str(form.get("From") or "").strip()
    body = str(form.get("Body") or "")
    try:
        num_media = int(form.get("NumMedia") or 0)
    except ValueError:
        num_media = 0
    media_url = str(form.get("MediaUrl0") or "")
    media_type = form.get("MediaContentType0")

    logger.info(
        "Incoming message",
        contact=mask_address(contact_id),
        num_media=num_media,
        media_type=media_type,
    )

    if not contact_id:
        metrics.ignored_webhooks += 1
        return Response(content=empty_twiml(), media_type="application/xml")

    attachment = None
    if num_media > 0 and media_url:
        attachment = Attachment(url=media_url, content_type=str(media_type) if media_type else None)
        metrics.media_messages += 1
    else:
        metrics.text_messages += 1

    request.app.state.dispatcher.submit(
        InboundMessage(contact_id=contact_id, text=body, attachment=attachment)
    )

    return Response(content=empty_twiml(), media_type="application/xml")


@app.get("/media/{name}")
async def get_media(name: str, request: Request) -> FileResponse:
    """Serve a synthesized reply to Twilio."""
    media: MediaStore = request.app.state.media
    path = media.resolve(name)
    if path is None:
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(path, media_type="audio/mpeg" if path.suffix == ".mp3" else None)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        error=str(exc),
    )
    metrics.errors += 1

    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )


def main() -> None:
    """Run the server."""
    # Full validation happens in the lifespan; here we only need port and log level.
    config = get_config()
    configure_logging(config.log_level)

    logger.info("Starting server", port=config.port, public_host=config.public_host or "NOT SET")

    uvicorn.run(
        "server.app:app",
        host="0.0.0.0",
        port=config.port,
        log_level=config.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
