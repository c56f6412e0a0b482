"""
SQLAlchemy models for database persistence.

Defines the schema for communication sessions, emotion logs and messages.
Profiles (students/teachers) live in the auth service and are referenced by id.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class CommunicationSessionModel(Base):
    """Database model for student communication sessions."""

    __tablename__ = "communication_sessions"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    student_id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    language_code: Mapped[str | None] = mapped_column(String(35), nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        nullable=False,
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    session_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        nullable=False,
    )

    # Relationships
    emotion_logs: Mapped[list["EmotionLogModel"]] = relationship(
        back_populates="session",
        order_by="EmotionLogModel.detected_at",
    )
    messages: Mapped[list["CommunicationMessageModel"]] = relationship(
        back_populates="session",
        order_by="CommunicationMessageModel.created_at",
    )


class EmotionLogModel(Base):
    """Database model for sampled emotions."""

    __tablename__ = "emotion_logs"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    student_id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    session_id: Mapped[UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("communication_sessions.id"),
        nullable=True,
    )
    emotion_type: Mapped[str] = mapped_column(String(50), nullable=False)
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    context: Mapped[str | None] = mapped_column(String(50), nullable=True)
    detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        nullable=False,
    )

    # Relationships
    session: Mapped[Optional["CommunicationSessionModel"]] = relationship(back_populates="emotion_logs")


class CommunicationMessageModel(Base):
    """Database model for messages a student sent during a session."""

    __tablename__ = "communication_messages"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    student_id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    session_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("communication_sessions.id"),
        nullable=False,
    )
    message_type: Mapped[str] = mapped_column(String(50), nullable=False)
    original_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    simplified_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    translated_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    language_code: Mapped[str | None] = mapped_column(String(35), nullable=True)
    visual_card_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    audio_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        nullable=False,
    )

    # Relationships
    session: Mapped["CommunicationSessionModel"] = relationship(back_populates="messages")
