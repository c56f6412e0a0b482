"""
Text-AI collaborator client (simplify, summarize, translate).
"""

from classroom_bridge.ai.text_client import (
    ChatClientBase,
    ChatResponse,
    GatewayChatClient,
    Message,
    TextAction,
    TextAIClient,
    TextAIResult,
)

__all__ = [
    "ChatClientBase",
    "ChatResponse",
    "GatewayChatClient",
    "Message",
    "TextAction",
    "TextAIClient",
    "TextAIResult",
]
