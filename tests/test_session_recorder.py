import asyncio
from datetime import datetime
from uuid import UUID, uuid4

import pytest

from classroom_bridge.emotion.schemas import ClassifiedEmotion, EmotionLabel
from classroom_bridge.errors import PersistenceFailed
from classroom_bridge.session.recorder import EmotionSessionRecorder, RecorderConfig
from classroom_bridge.session.schemas import (
    CommunicationMessage,
    ContextTag,
    EmotionEvent,
    MessageType,
    RecorderState,
)


class FakeSource:
    def __init__(self) -> None:
        self.listeners = []
        self.stopped = 0

    def subscribe(self, listener):
        self.listeners.append(listener)

        def _unsubscribe():
            self.listeners.remove(listener)

        return _unsubscribe

    def stop_detection(self) -> None:
        self.stopped += 1

    def emit(self, label: EmotionLabel, confidence: float = 0.7) -> None:
        for listener in list(self.listeners):
            listener(ClassifiedEmotion(label=label, confidence=confidence))


class FakeStore:
    def __init__(self, *, fail_create: bool = False, fail_writes: set[int] | None = None) -> None:
        self.fail_create = fail_create
        self.fail_writes = fail_writes or set()
        self.session_id = uuid4()
        self.created: list[tuple[UUID, str]] = []
        self.events: list[EmotionEvent] = []
        self.messages: list[CommunicationMessage] = []
        self.closed: list[tuple[UUID, datetime, int]] = []
        self._writes = 0

    async def create_session(self, student_id: UUID, language_code: str) -> UUID:
        if self.fail_create:
            raise PersistenceFailed("Could not open session.")
        self.created.append((student_id, language_code))
        return self.session_id

    async def _maybe_fail(self) -> None:
        index = self._writes
        self._writes += 1
        await asyncio.sleep(0)
        if index in self.fail_writes:
            raise PersistenceFailed("Could not append emotion event.")

    async def append_emotion_event(self, event: EmotionEvent) -> None:
        await self._maybe_fail()
        self.events.append(event)

    async def append_message(self, message: CommunicationMessage) -> None:
        await self._maybe_fail()
        self.messages.append(message)

    async def close_session(self, session_id: UUID, ended_at: datetime, duration_seconds: int) -> None:
        self.closed.append((session_id, ended_at, duration_seconds))


@pytest.mark.asyncio
async def test_events_are_written_in_order_under_the_open_session():
    source, store = FakeSource(), FakeStore()
    recorder = EmotionSessionRecorder(store=store, source=source)
    student = uuid4()

    session = await recorder.open(student, "es-ES")
    assert session is not None
    assert recorder.state is RecorderState.SESSION_OPEN
    assert store.created == [(student, "es-ES")]

    labels = [EmotionLabel.HAPPY, EmotionLabel.SAD, EmotionLabel.CONFUSED, EmotionLabel.NEUTRAL]
    for label in labels:
        source.emit(label)
    await recorder.close()

    assert [e.label for e in store.events] == labels
    assert all(e.session_id == store.session_id for e in store.events)
    assert all(e.student_id == student for e in store.events)
    assert recorder.events_written == 4


@pytest.mark.asyncio
async def test_emotions_before_open_are_not_recorded():
    source, store = FakeSource(), FakeStore()
    recorder = EmotionSessionRecorder(store=store, source=source)

    source.emit(EmotionLabel.ANGRY)
    await recorder.open(uuid4())
    await recorder.close()

    assert store.events == []


@pytest.mark.asyncio
async def test_store_failure_on_open_records_nothing():
    source, store = FakeSource(), FakeStore(fail_create=True)
    recorder = EmotionSessionRecorder(store=store, source=source)

    assert await recorder.open(uuid4()) is None
    assert recorder.state is RecorderState.NO_SESSION
    assert recorder.error == "Could not open session."

    source.emit(EmotionLabel.SAD)
    assert recorder.record_message(MessageType.TEXT, original_text="hi") is False
    await recorder.close()

    assert store.events == []
    assert store.closed == []


@pytest.mark.asyncio
async def test_context_tag_follows_speaking_state():
    speaking = {"value": False}
    source, store = FakeSource(), FakeStore()
    recorder = EmotionSessionRecorder(store=store, source=source, is_speaking=lambda: speaking["value"])

    await recorder.open(uuid4())
    source.emit(EmotionLabel.NEUTRAL)
    speaking["value"] = True
    source.emit(EmotionLabel.HAPPY)
    await recorder.close()

    assert [e.context for e in store.events] == [ContextTag.IDLE, ContextTag.SPEAKING]


@pytest.mark.asyncio
async def test_failed_write_is_dropped_and_later_writes_continue():
    source, store = FakeSource(), FakeStore(fail_writes={1})
    recorder = EmotionSessionRecorder(store=store, source=source)

    await recorder.open(uuid4())
    source.emit(EmotionLabel.HAPPY)
    source.emit(EmotionLabel.SAD)
    source.emit(EmotionLabel.BORED)
    await recorder.close()

    assert [e.label for e in store.events] == [EmotionLabel.HAPPY, EmotionLabel.BORED]
    assert recorder.writes_dropped == 1


@pytest.mark.asyncio
async def test_close_stops_the_sampler_and_marks_the_session_ended():
    source, store = FakeSource(), FakeStore()
    recorder = EmotionSessionRecorder(store=store, source=source)

    await recorder.open(uuid4())
    await recorder.close()

    assert source.stopped == 1
    assert source.listeners == []
    assert recorder.state is RecorderState.SESSION_CLOSED
    assert len(store.closed) == 1
    session_id, ended_at, duration = store.closed[0]
    assert session_id == store.session_id
    assert duration >= 0
    assert recorder.session.ended_at == ended_at

    source.emit(EmotionLabel.SAD)
    await recorder.close()
    assert store.events == []
    assert len(store.closed) == 1


@pytest.mark.asyncio
async def test_open_after_close_is_rejected():
    recorder = EmotionSessionRecorder(store=FakeStore(), source=FakeSource())
    await recorder.open(uuid4())
    await recorder.close()

    with pytest.raises(RuntimeError):
        await recorder.open(uuid4())


@pytest.mark.asyncio
async def test_open_twice_keeps_the_first_session():
    store = FakeStore()
    recorder = EmotionSessionRecorder(store=store, source=FakeSource())
    first = await recorder.open(uuid4())
    second = await recorder.open(uuid4())
    await recorder.close()

    assert first is second
    assert len(store.created) == 1


@pytest.mark.asyncio
async def test_concerning_events_reach_persisted_listeners():
    source, store = FakeSource(), FakeStore()
    recorder = EmotionSessionRecorder(store=store, source=source)
    persisted = []
    recorder.subscribe_persisted(persisted.append)

    await recorder.open(uuid4())
    source.emit(EmotionLabel.HAPPY, 0.9)
    source.emit(EmotionLabel.SCARED, 0.8)
    await recorder.close()

    assert [e.is_concerning for e in persisted] == [False, True]


@pytest.mark.asyncio
async def test_messages_share_the_queue_with_emotions():
    source, store = FakeSource(), FakeStore()
    recorder = EmotionSessionRecorder(store=store, source=source)

    await recorder.open(uuid4(), "en-US")
    source.emit(EmotionLabel.HAPPY)
    assert recorder.record_message(MessageType.VOICE, original_text="I need help", language_code="en-US")
    await recorder.close()

    assert len(store.events) == 1
    assert store.messages[0].message_type is MessageType.VOICE
    assert store.messages[0].original_text == "I need help"
    assert store.messages[0].session_id == store.session_id


@pytest.mark.asyncio
async def test_close_gives_up_on_a_stuck_store():
    class SlowStore(FakeStore):
        async def append_emotion_event(self, event):
            await asyncio.sleep(10)

    source, store = FakeSource(), SlowStore()
    recorder = EmotionSessionRecorder(store=store, source=source, config=RecorderConfig(drain_timeout_s=0.05))

    await recorder.open(uuid4())
    source.emit(EmotionLabel.HAPPY)
    await asyncio.wait_for(recorder.close(), timeout=1.0)

    assert recorder.state is RecorderState.SESSION_CLOSED
    assert len(store.closed) == 1
