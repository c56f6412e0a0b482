"""
Text-AI client.

Simplifies, summarizes and translates student/teacher text through an
OpenAI-compatible chat completions gateway.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, Field

from classroom_bridge.errors import AIProcessingFailed, ai_processing_error

logger = logging.getLogger(__name__)

DEFAULT_TARGET_LANGUAGE = "Spanish"


class TextAction(str, Enum):
    """Operations the text-AI collaborator supports."""

    SIMPLIFY = "simplify"
    TRANSLATE = "translate"
    SUMMARIZE = "summarize"


class Message(BaseModel):
    """A message in a conversation."""

    role: str = Field(..., description="Role of the speaker (system, user, assistant)")
    content: str = Field(..., description="Message content")


class ChatResponse(BaseModel):
    """Response from the chat gateway."""

    content: str = Field(..., description="Generated text content")
    finish_reason: str = Field(default="stop", description="Reason for completion")
    model: str = Field(default="", description="Model used for generation")
    usage: dict[str, int] = Field(default_factory=dict, description="Token usage information")


class TextAIResult(BaseModel):
    """Result of one text-AI request."""

    action: TextAction
    result: str
    target_language: str | None = None


def system_prompt(action: TextAction, target_language: str | None = None) -> str:
    """Build the system prompt for an action."""
    if action is TextAction.SIMPLIFY:
        return (
            "You are a text simplification assistant. Simplify the following text to make it easier "
            "to understand for students with learning disabilities. Use simple words, short sentences, "
            "and clear structure. Return only the simplified text."
        )
    if action is TextAction.SUMMARIZE:
        return (
            "You are a text summarization assistant. Create a concise summary of the following text, "
            "focusing on the main points. Keep it brief and clear. Return only the summary."
        )
    language = target_language or DEFAULT_TARGET_LANGUAGE
    return (
        f"You are a translation assistant. Translate the following text to {language}. "
        "Return only the translated text, nothing else."
    )


class ChatClientBase(ABC):
    """Abstract base class for chat completion clients."""

    @abstractmethod
    async def chat(self, messages: list[Message], **kwargs: Any) -> ChatResponse:
        """
        Generate a chat completion.

        Args:
            messages: Conversation history.
            **kwargs: Additional model-specific parameters.

        Returns:
            Generated response.

        Raises:
            AIProcessingFailed: On any gateway or transport failure.
        """
        ...


class GatewayChatClient(ChatClientBase):
    """httpx client for an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(self, url: str, *, api_key: str = "", model: str = "", timeout: float = 30.0) -> None:
        self._url = url
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def model(self) -> str:
        """Get the model name."""
        return self._model

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._client = httpx.AsyncClient(timeout=self._timeout, headers=headers)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def chat(self, messages: list[Message], **kwargs: Any) -> ChatResponse:
        client = await self._get_client()
        body: dict[str, Any] = {
            "model": self._model,
            "messages": [m.model_dump() for m in messages],
            **kwargs,
        }

        try:
            response = await client.post(self._url, json=body)
        except httpx.HTTPError as e:
            raise AIProcessingFailed(f"Text processing failed: {e}") from e

        if response.is_error:
            detail = response.text[:200]
            logger.warning(f"[AI] gateway error status={response.status_code} detail={detail}")
            raise ai_processing_error(response.status_code, detail)

        try:
            data = response.json()
            choice = data["choices"][0]
            return ChatResponse(
                content=choice["message"]["content"] or "",
                finish_reason=choice.get("finish_reason") or "stop",
                model=data.get("model", self._model),
                usage=data.get("usage") or {},
            )
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AIProcessingFailed("Text processing returned an unexpected response.") from e


class TextAIClient:
    """Simplify / summarize / translate on top of a chat client."""

    def __init__(self, chat_client: ChatClientBase) -> None:
        self._chat = chat_client

    async def process(
        self,
        text: str,
        action: TextAction | str,
        target_language: str | None = None,
    ) -> TextAIResult:
        """
        Run one text action.

        Raises:
            ValueError: Empty text or unknown action.
            AIProcessingFailed: Including the rate-limit and quota subclasses.
        """
        if not text or not text.strip():
            raise ValueError("Text and action are required")
        action = TextAction(action)

        logger.info(f"[AI] processing action={action.value} chars={len(text)}")
        response = await self._chat.chat(
            [
                Message(role="system", content=system_prompt(action, target_language)),
                Message(role="user", content=text),
            ]
        )
        result = response.content.strip()
        if not result:
            raise AIProcessingFailed("Text processing returned an empty result.")

        return TextAIResult(
            action=action,
            result=result,
            target_language=(target_language or DEFAULT_TARGET_LANGUAGE)
            if action is TextAction.TRANSLATE
            else None,
        )

    async def simplify(self, text: str) -> str:
        return (await self.process(text, TextAction.SIMPLIFY)).result

    async def summarize(self, text: str) -> str:
        return (await self.process(text, TextAction.SUMMARIZE)).result

    async def translate(self, text: str, target_language: str | None = None) -> str:
        return (await self.process(text, TextAction.TRANSLATE, target_language)).result
