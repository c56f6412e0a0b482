"""Emotion session recorder (glue layer).

This module correlates classified emotions with the student's activity:

sampler -> recorder -> store

State machine per interface instance:
NO_SESSION -> SESSION_OPEN -> SESSION_CLOSED

Writes are best-effort and at-most-once: a failed write is logged and dropped.
A single writer task drains a FIFO queue, so events reach the store in the
order the sampler produced them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Protocol
from uuid import UUID

from classroom_bridge.emotion.schemas import ClassifiedEmotion
from classroom_bridge.session.schemas import (
    CommunicationMessage,
    CommunicationSession,
    ContextTag,
    EmotionEvent,
    MessageType,
    RecorderState,
)

logger = logging.getLogger(__name__)

PersistedListener = Callable[[EmotionEvent], None]


@dataclass(frozen=True)
class RecorderConfig:
    drain_timeout_s: float = 5.0


class SessionStore(Protocol):
    async def create_session(self, student_id: UUID, language_code: str) -> UUID: ...

    async def append_emotion_event(self, event: EmotionEvent) -> None: ...

    async def append_message(self, message: CommunicationMessage) -> None: ...

    async def close_session(self, session_id: UUID, ended_at: datetime, duration_seconds: int) -> None: ...


class EmotionSource(Protocol):
    def subscribe(self, listener: Callable[[ClassifiedEmotion], None]) -> Callable[[], None]: ...

    def stop_detection(self) -> None: ...


class EmotionSessionRecorder:
    def __init__(
        self,
        *,
        store: SessionStore,
        source: EmotionSource,
        is_speaking: Callable[[], bool] = lambda: False,
        config: RecorderConfig | None = None,
    ) -> None:
        self._store = store
        self._source = source
        self._is_speaking = is_speaking
        self._config = config or RecorderConfig()

        self._state = RecorderState.NO_SESSION
        self._session: CommunicationSession | None = None
        self.error: str | None = None

        self._queue: asyncio.Queue[EmotionEvent | CommunicationMessage] = asyncio.Queue()
        self._writer: asyncio.Task | None = None
        self._persisted_listeners: list[PersistedListener] = []
        self.events_written = 0
        self.writes_dropped = 0

        self._unsubscribe: Callable[[], None] | None = self._source.subscribe(self._on_emotion)

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def session(self) -> CommunicationSession | None:
        return self._session

    @property
    def session_id(self) -> UUID | None:
        return self._session.id if self._session else None

    def subscribe_persisted(self, listener: PersistedListener) -> Callable[[], None]:
        """Observe emotion events after they were written (e.g. for alerting)."""
        self._persisted_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._persisted_listeners:
                self._persisted_listeners.remove(listener)

        return _unsubscribe

    async def open(self, student_id: UUID, language_code: str = "en-US") -> CommunicationSession | None:
        """
        Create the session record and start accepting events.

        A store failure is reported through ``error`` and the return value;
        the recorder stays in NO_SESSION and records nothing.
        """
        if self._state is RecorderState.SESSION_OPEN:
            return self._session
        if self._state is RecorderState.SESSION_CLOSED:
            raise RuntimeError("Session already closed; create a new recorder for a new session")

        try:
            session_id = await self._store.create_session(student_id, language_code)
        except Exception as e:
            self.error = getattr(e, "user_message", None) or f"Could not start session: {e}"
            logger.warning(f"[SESSION] create failed student={student_id}: {e}")
            return None

        self.error = None
        self._session = CommunicationSession(
            id=session_id,
            student_id=student_id,
            language_code=language_code,
        )
        self._state = RecorderState.SESSION_OPEN
        self._writer = asyncio.create_task(self._drain(), name="session-writer")
        logger.info(f"[SESSION] opened id={session_id} student={student_id} lang={language_code}")
        return self._session

    async def close(self) -> None:
        """Stop the sampler, flush queued writes and mark the session ended."""
        if self._state is RecorderState.SESSION_CLOSED:
            return

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._source.stop_detection()

        self._state = RecorderState.SESSION_CLOSED

        writer, self._writer = self._writer, None
        if writer is not None:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=self._config.drain_timeout_s)
            except asyncio.TimeoutError:
                logger.warning(f"[SESSION] dropping {self._queue.qsize()} unwritten records on close")
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass

        session = self._session
        if session is None:
            return

        ended_at = datetime.now(timezone.utc)
        duration = max(0, int((ended_at - session.started_at).total_seconds()))
        self._session = session.model_copy(update={"ended_at": ended_at, "duration_seconds": duration})
        try:
            await self._store.close_session(session.id, ended_at, duration)
        except Exception as e:
            logger.warning(f"[SESSION] close failed id={session.id}: {e}")
        logger.info(f"[SESSION] closed id={session.id} duration={duration}s events={self.events_written}")

    def record_message(self, message_type: MessageType, **fields: Any) -> bool:
        """Queue a communication message for the open session. Returns False when none is open."""
        session = self._session
        if self._state is not RecorderState.SESSION_OPEN or session is None:
            logger.debug(f"[SESSION] no open session; message type={message_type.value} not recorded")
            return False

        message = CommunicationMessage(
            student_id=session.student_id,
            session_id=session.id,
            message_type=message_type,
            **fields,
        )
        self._queue.put_nowait(message)
        return True

    def _on_emotion(self, emotion: ClassifiedEmotion) -> None:
        session = self._session
        if self._state is not RecorderState.SESSION_OPEN or session is None:
            return

        context = ContextTag.SPEAKING if self._is_speaking() else ContextTag.IDLE
        event = EmotionEvent(
            student_id=session.student_id,
            session_id=session.id,
            label=emotion.label,
            confidence=emotion.confidence,
            context=context,
        )
        self._queue.put_nowait(event)

    async def _drain(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self._write(item)
            finally:
                self._queue.task_done()

    async def _write(self, item: EmotionEvent | CommunicationMessage) -> None:
        try:
            if isinstance(item, EmotionEvent):
                await self._store.append_emotion_event(item)
            else:
                await self._store.append_message(item)
        except Exception as e:
            self.writes_dropped += 1
            logger.warning(f"[SESSION] write dropped type={type(item).__name__}: {e}")
            return

        if isinstance(item, EmotionEvent):
            self.events_written += 1
            if item.is_concerning:
                logger.info(
                    f"[SESSION] concerning emotion student={item.student_id} "
                    f"label={item.label.value} confidence={item.confidence:.2f}"
                )
            for listener in list(self._persisted_listeners):
                try:
                    listener(item)
                except Exception:
                    logger.exception("[SESSION] persisted-event listener failed")
