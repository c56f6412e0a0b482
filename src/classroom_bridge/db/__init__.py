"""
Database module for persistence.

Provides SQLAlchemy models, the repository pattern and the session store
used by the emotion session recorder.
"""

from classroom_bridge.db.models import (
    Base,
    CommunicationMessageModel,
    CommunicationSessionModel,
    EmotionLogModel,
)
from classroom_bridge.db.repository import (
    CommunicationMessageRepository,
    CommunicationSessionRepository,
    EmotionLogRepository,
)
from classroom_bridge.db.store import SqlAlchemyStore

__all__ = [
    "Base",
    "CommunicationMessageModel",
    "CommunicationSessionModel",
    "EmotionLogModel",
    "CommunicationMessageRepository",
    "CommunicationSessionRepository",
    "EmotionLogRepository",
    "SqlAlchemyStore",
]
