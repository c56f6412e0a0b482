"""Student interface (composition root for one active student screen).

Wires the components together:

sampler -> recorder -> store
bridge (voice input) -> text-AI -> recorder (messages)
speech output (independent)

The interface owns exactly one camera (via the sampler) and one microphone
(via the bridge). Failures are published to error listeners and kept in
``last_error``; hardware failures at mount time leave the interface running
in degraded mode.
"""

from __future__ import annotations

import logging
from typing import Any, Callable
from uuid import UUID

from pydantic import BaseModel, Field

from classroom_bridge.ai.text_client import TextAIClient
from classroom_bridge.emotion.sampler import ExpressionSampler
from classroom_bridge.errors import AIProcessingFailed, ClassroomBridgeError
from classroom_bridge.session.recorder import EmotionSessionRecorder, RecorderConfig, SessionStore
from classroom_bridge.session.schemas import MessageType
from classroom_bridge.voice.capture_bridge import AudioCaptureBridge
from classroom_bridge.voice.speech_output import SpeechOutputController
from classroom_bridge.voice.tts import Utterance

logger = logging.getLogger(__name__)

ErrorListener = Callable[[str], None]


class CommunicationResult(BaseModel):
    """Text produced by one student message, with optional AI rewrites."""

    message_type: MessageType
    original_text: str = ""
    simplified_text: str | None = None
    translated_text: str | None = None
    recorded: bool = Field(default=False, description="Queued for the open session")


class StudentInterface:
    def __init__(
        self,
        *,
        sampler: ExpressionSampler,
        bridge: AudioCaptureBridge,
        speech: SpeechOutputController,
        store: SessionStore,
        text_ai: TextAIClient | None = None,
        language: str = "en-US",
        recorder_config: RecorderConfig | None = None,
    ) -> None:
        self._sampler = sampler
        self._bridge = bridge
        self._speech = speech
        self._text_ai = text_ai
        self._language = language
        self._recorder = EmotionSessionRecorder(
            store=store,
            source=sampler,
            is_speaking=lambda: bridge.is_recording,
            config=recorder_config,
        )
        self._student_id: UUID | None = None
        self._mounted = False
        self._error_listeners: list[ErrorListener] = []
        self.last_error: str | None = None

    @property
    def sampler(self) -> ExpressionSampler:
        return self._sampler

    @property
    def bridge(self) -> AudioCaptureBridge:
        return self._bridge

    @property
    def speech(self) -> SpeechOutputController:
        return self._speech

    @property
    def recorder(self) -> EmotionSessionRecorder:
        return self._recorder

    @property
    def emotion_tracking(self) -> bool:
        return self._sampler.is_detecting

    def subscribe_errors(self, listener: ErrorListener) -> Callable[[], None]:
        self._error_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._error_listeners:
                self._error_listeners.remove(listener)

        return _unsubscribe

    def _report(self, message: str) -> None:
        self.last_error = message
        for listener in list(self._error_listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("error listener failed")

    async def mount(self, student_id: UUID) -> None:
        """Open the session and start emotion tracking. Never raises for hardware or store failures."""
        if self._mounted:
            return
        self._mounted = True
        self._student_id = student_id

        self._sampler.load_models()

        session = await self._recorder.open(student_id, self._language)
        if session is None and self._recorder.error:
            self._report(self._recorder.error)

        try:
            await self._sampler.start_detection()
        except ClassroomBridgeError as e:
            logger.warning(f"emotion tracking disabled: {e.user_message}")
            self._report(e.user_message)

    async def unmount(self) -> None:
        """Stop speech, release the microphone and close the session (stops the sampler)."""
        if not self._mounted:
            return
        self._mounted = False
        await self._speech.stop()
        await self._bridge.abort()
        await self._recorder.close()

    async def start_voice_input(self) -> None:
        try:
            await self._bridge.start_recording()
        except ClassroomBridgeError as e:
            self._report(e.user_message)
            raise

    async def finish_voice_input(
        self,
        *,
        simplify: bool = False,
        translate_to: str | None = None,
    ) -> CommunicationResult:
        """Stop recording, transcribe and log the transcript as a voice message."""
        try:
            text = await self._bridge.stop_recording()
        except ClassroomBridgeError as e:
            self._report(e.user_message)
            raise

        return await self._communicate(
            MessageType.VOICE, text, simplify=simplify, translate_to=translate_to
        )

    async def send_text(
        self,
        text: str,
        *,
        simplify: bool = False,
        translate_to: str | None = None,
    ) -> CommunicationResult:
        return await self._communicate(
            MessageType.TEXT, text, simplify=simplify, translate_to=translate_to
        )

    def send_visual_card(self, card: dict[str, Any]) -> CommunicationResult:
        label = str(card.get("label") or card.get("text") or "")
        recorded = self._recorder.record_message(
            MessageType.VISUAL_CARD,
            original_text=label or None,
            visual_card_data=card,
            language_code=self._language,
        )
        return CommunicationResult(
            message_type=MessageType.VISUAL_CARD,
            original_text=label,
            recorded=recorded,
        )

    async def speak(self, text: str) -> Utterance | None:
        return await self._speech.speak(text, self._language)

    async def _communicate(
        self,
        message_type: MessageType,
        text: str,
        *,
        simplify: bool,
        translate_to: str | None,
    ) -> CommunicationResult:
        result = CommunicationResult(message_type=message_type, original_text=(text or "").strip())
        if not result.original_text:
            return result

        if self._text_ai is not None:
            try:
                if simplify:
                    result.simplified_text = await self._text_ai.simplify(result.original_text)
                if translate_to:
                    result.translated_text = await self._text_ai.translate(result.original_text, translate_to)
            except AIProcessingFailed as e:
                # The original text is still logged.
                self._report(e.user_message)

        result.recorded = self._recorder.record_message(
            message_type,
            original_text=result.original_text,
            simplified_text=result.simplified_text,
            translated_text=result.translated_text,
            language_code=self._language,
        )
        return result
