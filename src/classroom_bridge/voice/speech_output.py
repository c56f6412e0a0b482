"""Speech output controller.

Plays synthesized speech for one utterance at a time. A new ``speak`` call
cancels the utterance in flight and waits for its END event before the next
one starts, so ``is_speaking`` never covers two utterances at once.

Listeners receive, per utterance, exactly one START followed by exactly one
END or ERROR.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from classroom_bridge.capabilities import Capability
from classroom_bridge.voice.tts import SpeechEngine, Utterance, Voice

logger = logging.getLogger(__name__)


class SpeechEventType(str, Enum):
    START = "start"
    END = "end"
    ERROR = "error"


@dataclass(frozen=True)
class SpeechEvent:
    type: SpeechEventType
    utterance: Utterance
    cancelled: bool = False
    error: str | None = None


SpeechListener = Callable[[SpeechEvent], None]


def primary_subtag(language: str) -> str:
    return language.replace("_", "-").split("-")[0].lower()


class SpeechOutputController:
    def __init__(
        self,
        engine: SpeechEngine,
        *,
        language: str = "en-US",
        rate: float = 0.9,
        capability: Capability = Capability.AVAILABLE,
    ) -> None:
        self._engine = engine
        self._language = language
        self._rate = rate
        self._capability = capability

        self._default_voice: Voice | None = None
        self._speaking = False
        self._task: asyncio.Task | None = None
        self._listeners: list[SpeechListener] = []

        self._engine.on_voices_changed(self._refresh_voices)
        self._refresh_voices()

    @property
    def is_supported(self) -> bool:
        return self._capability.is_available

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def language(self) -> str:
        return self._language

    @property
    def voices(self) -> list[Voice]:
        return self._engine.voices()

    @property
    def selected_voice(self) -> Voice | None:
        return self._default_voice

    def set_voice(self, voice: Voice) -> None:
        self._default_voice = voice

    def set_language(self, language: str) -> None:
        self._language = language
        self._refresh_voices()

    def subscribe(self, listener: SpeechListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _refresh_voices(self) -> None:
        voices = self._engine.voices()
        match = self._match_voice(voices, self._language)
        if match is not None:
            self._default_voice = match
        elif voices and self._default_voice is None:
            self._default_voice = voices[0]

    @staticmethod
    def _match_voice(voices: list[Voice], language: str) -> Voice | None:
        wanted = primary_subtag(language)
        return next((v for v in voices if primary_subtag(v.lang) == wanted), None)

    def select_voice(self, language: str) -> Voice | None:
        """Voice for ``language``: same primary subtag, else the default voice, else engine default."""
        return self._match_voice(self._engine.voices(), language) or self._default_voice

    async def speak(self, text: str, language: str | None = None) -> Utterance | None:
        """
        Start speaking ``text``; returns once playback has been scheduled.

        Any utterance in flight is cancelled first.
        """
        if not self.is_supported:
            logger.warning("[SPEECH] speech synthesis not supported")
            return None

        text = (text or "").strip()
        await self.stop()
        if not text:
            return None

        lang = language or self._language
        utterance = Utterance(text=text, lang=lang, voice=self.select_voice(lang), rate=self._rate)
        voice_name = utterance.voice.name if utterance.voice else "default"
        logger.info(f"[SPEECH] speak lang={lang} voice={voice_name} chars={len(text)}")

        self._task = asyncio.create_task(self._play(utterance), name="speech-utterance")
        return utterance

    async def wait(self) -> None:
        """Wait for the current utterance, if any, to finish."""
        task = self._task
        if task is not None:
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    async def stop(self) -> None:
        """Cancel playback immediately. Idempotent."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        self._engine.cancel()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _play(self, utterance: Utterance) -> None:
        self._speaking = True
        self._emit(SpeechEvent(SpeechEventType.START, utterance))
        try:
            await self._engine.play(utterance)
        except asyncio.CancelledError:
            self._speaking = False
            self._emit(SpeechEvent(SpeechEventType.END, utterance, cancelled=True))
            raise
        except Exception as e:
            self._speaking = False
            logger.warning(f"[SPEECH] playback failed: {e}")
            self._emit(SpeechEvent(SpeechEventType.ERROR, utterance, error=str(e)))
            return
        self._speaking = False
        self._emit(SpeechEvent(SpeechEventType.END, utterance))

    def _emit(self, event: SpeechEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("[SPEECH] listener failed")
