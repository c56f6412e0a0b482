"""
SQLAlchemy-backed session store.

Implements the recorder's store protocol with one transaction per call.
Every database error surfaces as ``PersistenceFailed``.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from classroom_bridge.db.models import Base
from classroom_bridge.db.repository import (
    CommunicationMessageRepository,
    CommunicationSessionRepository,
    EmotionLogRepository,
)
from classroom_bridge.errors import PersistenceFailed
from classroom_bridge.session.schemas import CommunicationMessage, EmotionEvent

logger = logging.getLogger(__name__)


class SqlAlchemyStore:
    """Persistence collaborator over an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str, *, echo: bool = False) -> "SqlAlchemyStore":
        engine = create_async_engine(database_url, echo=echo)
        return cls(async_sessionmaker(engine, expire_on_commit=False))

    @staticmethod
    async def create_schema(engine: AsyncEngine) -> None:
        """Create missing tables (development helper)."""
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            logger.debug(f"[SESSION] database error during {operation}: {e}")
            raise PersistenceFailed(f"Could not {operation}.") from e

    async def create_session(self, student_id: UUID, language_code: str) -> UUID:
        async with self._transaction("start session") as session:
            model = await CommunicationSessionRepository(session).open(student_id, language_code)
            return model.id

    async def append_emotion_event(self, event: EmotionEvent) -> None:
        async with self._transaction("save emotion") as session:
            await EmotionLogRepository(session).append(event)

    async def append_message(self, message: CommunicationMessage) -> None:
        async with self._transaction("save message") as session:
            await CommunicationMessageRepository(session).append(message)

    async def close_session(self, session_id: UUID, ended_at: datetime, duration_seconds: int) -> None:
        async with self._transaction("end session") as session:
            updated = await CommunicationSessionRepository(session).mark_ended(
                session_id, ended_at, duration_seconds
            )
            if updated is None:
                logger.warning(f"[SESSION] close requested for unknown session id={session_id}")
