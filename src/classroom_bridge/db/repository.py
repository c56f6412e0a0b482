"""
Repository pattern for database operations.

Provides a clean abstraction over SQLAlchemy for the rows this package writes.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from classroom_bridge.db.models import (
    Base,
    CommunicationMessageModel,
    CommunicationSessionModel,
    EmotionLogModel,
)
from classroom_bridge.session.schemas import CommunicationMessage, EmotionEvent

T = TypeVar("T", bound=Base)


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository with common CRUD operations."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize the repository.

        Args:
            session: SQLAlchemy async session.
        """
        self._session = session

    @property
    @abstractmethod
    def _model_class(self) -> type[T]:
        """Get the model class for this repository."""
        ...

    async def get_by_id(self, entity_id: UUID) -> T | None:
        """
        Get an entity by its ID.

        Args:
            entity_id: The entity's UUID.

        Returns:
            The entity if found, None otherwise.
        """
        return await self._session.get(self._model_class, entity_id)

    async def create(self, entity: T) -> T:
        """
        Create a new entity.

        Args:
            entity: The entity to create.

        Returns:
            The created entity.
        """
        self._session.add(entity)
        await self._session.flush()
        await self._session.refresh(entity)
        return entity

    async def update(self, entity: T) -> T:
        """
        Update an existing entity.

        Args:
            entity: The entity to update.

        Returns:
            The updated entity.
        """
        await self._session.flush()
        await self._session.refresh(entity)
        return entity


class CommunicationSessionRepository(BaseRepository[CommunicationSessionModel]):
    """Repository for communication session operations."""

    @property
    def _model_class(self) -> type[CommunicationSessionModel]:
        """Get the model class."""
        return CommunicationSessionModel

    async def open(self, student_id: UUID, language_code: str | None) -> CommunicationSessionModel:
        """
        Insert a new, open session for a student.

        Args:
            student_id: Student's UUID.
            language_code: Interface language of the session.

        Returns:
            The created session model.
        """
        return await self.create(
            CommunicationSessionModel(student_id=student_id, language_code=language_code)
        )

    async def mark_ended(
        self,
        session_id: UUID,
        ended_at: datetime,
        duration_seconds: int,
    ) -> CommunicationSessionModel | None:
        """
        Set the end time and duration of a session.

        Returns:
            The updated session, or None if it does not exist.
        """
        model = await self.get_by_id(session_id)
        if model is None:
            return None
        model.ended_at = ended_at
        model.session_duration = duration_seconds
        return await self.update(model)


class EmotionLogRepository(BaseRepository[EmotionLogModel]):
    """Repository for emotion log operations."""

    @property
    def _model_class(self) -> type[EmotionLogModel]:
        """Get the model class."""
        return EmotionLogModel

    async def append(self, event: EmotionEvent) -> EmotionLogModel:
        """
        Append one emotion event.

        Args:
            event: Event to store.

        Returns:
            The created log row.
        """
        return await self.create(
            EmotionLogModel(
                student_id=event.student_id,
                session_id=event.session_id,
                emotion_type=event.label.value,
                confidence_score=event.confidence,
                context=event.context.value,
                detected_at=event.detected_at,
            )
        )


class CommunicationMessageRepository(BaseRepository[CommunicationMessageModel]):
    """Repository for communication message operations."""

    @property
    def _model_class(self) -> type[CommunicationMessageModel]:
        """Get the model class."""
        return CommunicationMessageModel

    async def append(self, message: CommunicationMessage) -> CommunicationMessageModel:
        """
        Append one message.

        Args:
            message: Message to store.

        Returns:
            The created message row.
        """
        return await self.create(
            CommunicationMessageModel(
                student_id=message.student_id,
                session_id=message.session_id,
                message_type=message.message_type.value,
                original_text=message.original_text,
                simplified_text=message.simplified_text,
                translated_text=message.translated_text,
                language_code=message.language_code,
                visual_card_data=message.visual_card_data,
                audio_url=message.audio_url,
                created_at=message.created_at,
            )
        )
