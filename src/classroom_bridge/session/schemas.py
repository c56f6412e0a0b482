"""
Pydantic schemas for communication sessions, emotion events and messages.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from classroom_bridge.emotion.schemas import CONCERNING_LABELS, EmotionLabel


def _now_utc() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class ContextTag(str, Enum):
    """Activity of the student when an emotion was sampled."""

    SPEAKING = "speaking"
    IDLE = "idle"


class MessageType(str, Enum):
    TEXT = "text"
    VOICE = "voice"
    VISUAL_CARD = "visual_card"


class RecorderState(str, Enum):
    NO_SESSION = "no_session"
    SESSION_OPEN = "session_open"
    SESSION_CLOSED = "session_closed"


class CommunicationSession(BaseModel):
    """One continuous use of a student interface."""

    id: UUID = Field(..., description="Session identifier assigned by the store")
    student_id: UUID = Field(..., description="Subject (student) identifier")
    language_code: str = Field(default="en-US", description="Interface language")
    started_at: datetime = Field(default_factory=_now_utc, description="When the session opened")
    ended_at: datetime | None = Field(default=None, description="When the session closed")
    duration_seconds: int | None = Field(default=None, description="Session length in seconds")


class EmotionEvent(BaseModel):
    """Append-only record of one classified emotion during a session."""

    model_config = ConfigDict(frozen=True)

    student_id: UUID
    session_id: UUID
    label: EmotionLabel
    confidence: float = Field(..., ge=0.0, le=1.0)
    context: ContextTag
    detected_at: datetime = Field(default_factory=_now_utc)

    @property
    def is_concerning(self) -> bool:
        return self.label in CONCERNING_LABELS


class CommunicationMessage(BaseModel):
    """A message the student produced during a session."""

    model_config = ConfigDict(frozen=True)

    student_id: UUID
    session_id: UUID
    message_type: MessageType
    original_text: str | None = None
    simplified_text: str | None = None
    translated_text: str | None = None
    language_code: str | None = None
    visual_card_data: dict[str, Any] | None = None
    audio_url: str | None = None
    created_at: datetime = Field(default_factory=_now_utc)
