"""
Persistence for contact sessions and translation records.

Two logical tables:
- contact_sessions: one row per contact, upserted
- translation_records: append-only log

The session engine only needs load/upsert/insert; anything that speaks
SQLAlchemy's async dialects works (SQLite via aiosqlite by default, Postgres
via asyncpg in production).
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from src.translator.errors import PersistenceError
from src.translator.models import (
    ContactSession,
    Step,
    TranslationRecord,
    VoicePreference,
    utcnow,
)

logger = structlog.get_logger(__name__)

Base = declarative_base()


class ContactSessionEntity(Base):
    """SQLAlchemy contact session entity"""

    __tablename__ = "contact_sessions"

    contact_id = Column(String(64), primary_key=True)
    step = Column(String(32), nullable=False, default=Step.AWAITING_SOURCE_LANG.value)
    source_lang = Column(String(8), nullable=True)
    target_lang = Column(String(8), nullable=True)
    voice_preference = Column(String(8), nullable=True)
    speaking_rate = Column(Float, nullable=True)
    usage_counter = Column(Integer, nullable=False, default=0)
    plan_tier = Column(String(16), nullable=False, default="free")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class TranslationRecordEntity(Base):
    """SQLAlchemy translation log entity"""

    __tablename__ = "translation_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact_id = Column(String(64), nullable=False, index=True)
    original_text = Column(Text, nullable=False)
    translated_text = Column(Text, nullable=False)
    detected_lang = Column(String(8), nullable=True)
    dest_lang = Column(String(8), nullable=False)
    is_audio = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)


def _to_domain(entity: ContactSessionEntity) -> ContactSession:
    return ContactSession(
        contact_id=entity.contact_id,
        step=Step(entity.step),
        source_lang=entity.source_lang,
        target_lang=entity.target_lang,
        voice_preference=VoicePreference(entity.voice_preference) if entity.voice_preference else None,
        speaking_rate=entity.speaking_rate,
        usage_counter=entity.usage_counter or 0,
        plan_tier=entity.plan_tier or "free",
        created_at=entity.created_at or utcnow(),
        updated_at=entity.updated_at or utcnow(),
    )


def create_engine_for_url(database_url: str) -> AsyncEngine:
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        # A single shared connection, otherwise every checkout gets a fresh empty DB.
        return create_async_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(database_url, future=True)


class SessionStore:
    """SQLAlchemy implementation of the session / translation log store"""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._sessionmaker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str) -> "SessionStore":
        return cls(create_engine_for_url(database_url))

    async def init_models(self) -> None:
        """Ensure database tables are created"""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to initialize tables: {e}") from e

    async def close(self) -> None:
        await self.engine.dispose()

    async def load(self, contact_id: str) -> Optional[ContactSession]:
        try:
            async with self._sessionmaker() as db:
                result = await db.execute(
                    select(ContactSessionEntity).where(ContactSessionEntity.contact_id == contact_id)
                )
                entity = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Session load failed", error=str(e))
            raise PersistenceError(f"Failed to load session: {e}") from e

        return _to_domain(entity) if entity else None

    async def upsert(self, session: ContactSession) -> ContactSession:
        session.updated_at = utcnow()
        entity = ContactSessionEntity(
            contact_id=session.contact_id,
            step=session.step.value,
            source_lang=session.source_lang,
            target_lang=session.target_lang,
            voice_preference=session.voice_preference.value if session.voice_preference else None,
            speaking_rate=session.speaking_rate,
            usage_counter=session.usage_counter,
            plan_tier=session.plan_tier,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )
        try:
            async with self._sessionmaker() as db:
                await db.merge(entity)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error("Session upsert failed", step=session.step.value, error=str(e))
            raise PersistenceError(f"Failed to save session: {e}") from e
        return session

    async def insert_record(self, record: TranslationRecord) -> None:
        entity = TranslationRecordEntity(
            contact_id=record.contact_id,
            original_text=record.original_text,
            translated_text=record.translated_text,
            detected_lang=record.detected_lang,
            dest_lang=record.dest_lang,
            is_audio=record.is_audio,
            created_at=record.created_at,
        )
        try:
            async with self._sessionmaker() as db:
                db.add(entity)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error("Translation record insert failed", error=str(e))
            raise PersistenceError(f"Failed to append translation record: {e}") from e

    async def count_records(self, contact_id: str) -> int:
        try:
            async with self._sessionmaker() as db:
                result = await db.execute(
                    select(func.count())
                    .select_from(TranslationRecordEntity)
                    .where(TranslationRecordEntity.contact_id == contact_id)
                )
                return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to count translation records: {e}") from e
