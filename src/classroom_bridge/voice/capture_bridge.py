"""Audio capture and transcription bridge.

mic -> buffered chunks -> encoded clip -> transcription collaborator -> text

State machine: IDLE -> RECORDING -> FINALIZING -> IDLE.

A start request while a capture is acquiring, recording or finalizing is
rejected with ``RecordingInProgress``. Finalization runs as its own task and
is shielded from caller cancellation: once started it always settles and
always returns the bridge to IDLE.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable

from classroom_bridge.capabilities import Capability
from classroom_bridge.errors import (
    ClassroomBridgeError,
    HardwareUnavailable,
    NoActiveRecording,
    RecordingInProgress,
    TranscriptionFailed,
    Unsupported,
)
from classroom_bridge.voice.audio_io import AudioCaptureConfig, Microphone, MicrophoneStream
from classroom_bridge.voice.encoding import ClipEncoder, select_mime_type
from classroom_bridge.voice.transcription import Transcriber, TranscriptionRequest

logger = logging.getLogger(__name__)


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"


StateListener = Callable[[RecordingState], None]


class AudioCaptureBridge:
    def __init__(
        self,
        *,
        microphone: Microphone,
        transcriber: Transcriber,
        encoder: ClipEncoder,
        config: AudioCaptureConfig | None = None,
        capability: Capability = Capability.AVAILABLE,
        acquire_timeout_s: float | None = 10.0,
    ) -> None:
        self._microphone = microphone
        self._transcriber = transcriber
        self._encoder = encoder
        self._config = config or AudioCaptureConfig()
        self._capability = capability
        self._acquire_timeout_s = acquire_timeout_s

        self._state = RecordingState.IDLE
        self._acquiring = False
        self._abort_requested = False
        self._stream: MicrophoneStream | None = None
        self._mime_type: str | None = None
        self._listeners: list[StateListener] = []
        self.error: str | None = None

    @property
    def config(self) -> AudioCaptureConfig:
        return self._config

    @property
    def is_supported(self) -> bool:
        return self._capability.is_available

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is RecordingState.RECORDING

    @property
    def mime_type(self) -> str | None:
        """Encoding chosen for the current capture (None = encoder default)."""
        return self._mime_type

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Observe state transitions, delivered in order."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set_state(self, state: RecordingState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("[AUDIO] state listener failed")

    async def start_recording(self) -> None:
        """
        Open the microphone and start buffering audio.

        Raises:
            Unsupported: No audio capture in this runtime.
            RecordingInProgress: A capture is already outstanding.
            PermissionDenied: Microphone access declined or no microphone.
            HardwareUnavailable: Acquisition failed or timed out.
        """
        if not self._capability.is_available:
            self.error = "Audio recording is not supported on this device."
            raise Unsupported(self.error)
        if self._acquiring or self._state is not RecordingState.IDLE:
            raise RecordingInProgress()

        self._acquiring = True
        self._abort_requested = False
        self.error = None
        try:
            mime_type = select_mime_type(self._encoder.is_type_supported)
            stream = await asyncio.wait_for(
                self._microphone.open(self._config),
                timeout=self._acquire_timeout_s,
            )
        except asyncio.TimeoutError as e:
            self.error = "Timed out waiting for the microphone."
            logger.warning(f"[AUDIO] {self.error}")
            raise HardwareUnavailable(self.error) from e
        except ClassroomBridgeError as e:
            self.error = e.user_message
            logger.warning(f"[AUDIO] microphone acquisition failed: {e.user_message}")
            raise
        except Exception as e:
            self.error = f"Failed to start recording: {e}"
            logger.warning(f"[AUDIO] {self.error}")
            raise HardwareUnavailable(self.error) from e
        finally:
            self._acquiring = False

        if self._abort_requested:
            self._abort_requested = False
            try:
                await stream.stop()
            except Exception as e:
                logger.debug(f"[AUDIO] microphone release failed after abort: {e}")
            logger.info("[AUDIO] recording aborted before the microphone was ready")
            return

        self._stream = stream
        self._mime_type = mime_type
        self._set_state(RecordingState.RECORDING)
        logger.info(f"[AUDIO] recording started mime={mime_type or 'default'}")

    async def stop_recording(self) -> str:
        """
        Stop capture, transcribe the clip and return the recognized text.

        Raises:
            NoActiveRecording: Not currently recording.
            TranscriptionFailed: Including the rate-limit and quota subclasses.
        """
        stream = self._stream
        if self._state is not RecordingState.RECORDING or stream is None:
            raise NoActiveRecording()

        self._stream = None
        self._set_state(RecordingState.FINALIZING)

        task = asyncio.create_task(self._finalize(stream), name="audio-finalize")
        # Consume the result even if the caller stops waiting.
        task.add_done_callback(lambda t: t.cancelled() or t.exception())
        return await asyncio.shield(task)

    async def abort(self) -> None:
        """
        Release the microphone and discard buffered audio.

        During acquisition the pending start is cancelled instead: the
        microphone is released as soon as it opens and the bridge stays
        idle. No-op otherwise unless recording.
        """
        if self._acquiring:
            self._abort_requested = True
            return

        stream = self._stream
        if self._state is not RecordingState.RECORDING or stream is None:
            return

        self._stream = None
        self._set_state(RecordingState.FINALIZING)
        try:
            await stream.stop()
        except Exception as e:
            logger.debug(f"[AUDIO] microphone release failed during abort: {e}")
        finally:
            self._set_state(RecordingState.IDLE)
        logger.info("[AUDIO] recording aborted")

    async def _finalize(self, stream: MicrophoneStream) -> str:
        try:
            chunks = await stream.stop()
            if not chunks:
                logger.info("[AUDIO] no audio captured; skipping transcription")
                return ""

            clip = await asyncio.to_thread(
                self._encoder.encode,
                chunks,
                mime_type=self._mime_type,
                sample_rate=self._config.sample_rate,
                channels=self._config.channels,
            )
            logger.info(f"[AUDIO] clip ready mime={clip.mime_type} bytes={len(clip.data)}")

            result = await self._transcriber.transcribe(
                TranscriptionRequest(audio_base64=clip.to_base64(), mime_type=clip.mime_type)
            )
            logger.info(f"[AUDIO] transcription ok chars={len(result.text)}")
            return result.text
        except TranscriptionFailed as e:
            self.error = e.user_message
            logger.warning(f"[AUDIO] transcription failed reason={e.reason.value}: {e}")
            raise
        except Exception as e:
            failure = TranscriptionFailed(f"Transcription failed: {e}")
            self.error = failure.user_message
            logger.warning(f"[AUDIO] finalize failed: {e}")
            raise failure from e
        finally:
            self._mime_type = None
            self._set_state(RecordingState.IDLE)
