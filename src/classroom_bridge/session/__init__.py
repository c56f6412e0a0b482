"""
Session recording: groups emotion events and messages under one session.
"""

from classroom_bridge.session.recorder import (
    EmotionSessionRecorder,
    RecorderConfig,
    SessionStore,
)
from classroom_bridge.session.schemas import (
    CommunicationMessage,
    CommunicationSession,
    ContextTag,
    EmotionEvent,
    MessageType,
    RecorderState,
)

__all__ = [
    "CommunicationMessage",
    "CommunicationSession",
    "ContextTag",
    "EmotionEvent",
    "EmotionSessionRecorder",
    "MessageType",
    "RecorderConfig",
    "RecorderState",
    "SessionStore",
]
