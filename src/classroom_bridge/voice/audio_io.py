"""Audio capture + playback.

This module is "dumb hardware I/O": it knows nothing about sessions,
transcription or speech synthesis.

It provides:
- microphone capture, buffered in fixed-length chunks
- speaker playback of WAV files, with immediate stop
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import numpy as np

from classroom_bridge.errors import HardwareUnavailable, PermissionDenied

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioCaptureConfig:
    sample_rate: int = 16000
    channels: int = 1
    dtype: str = "int16"  # sounddevice dtype and WAV sample width
    chunk_s: float = 1.0
    # PortAudio callback period; callbacks are grouped into chunk_s buffers.
    block_s: float = 0.05
    # Processing requests; a backend applies the ones it supports.
    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True

    @property
    def chunk_frames(self) -> int:
        return max(1, int(self.sample_rate * self.chunk_s))

    @property
    def block_frames(self) -> int:
        return max(1, min(int(self.sample_rate * self.block_s), self.chunk_frames))


class MicrophoneStream(Protocol):
    async def stop(self) -> list[np.ndarray]:
        """Stop capture, release the device and return the buffered chunks."""
        ...


class Microphone(Protocol):
    async def open(self, config: AudioCaptureConfig) -> MicrophoneStream: ...


def _require_sounddevice():
    try:
        import sounddevice as sd  # type: ignore

        return sd
    except Exception as e:  # pragma: no cover
        raise RuntimeError(
            "sounddevice is required for voice mode. Install Python deps with: pip install -e '.[voice]'. "
            "If you see 'PortAudio library not found', install PortAudio (Debian/Ubuntu: sudo apt-get install portaudio19-dev)."
        ) from e


class _SoundDeviceStream:
    """
    PortAudio input stream buffering audio in chunk_s pieces.

    The device delivers short blocks; they are grouped into chunks as they
    arrive. stop() waits for the last callback before collecting, so the
    tail of the recording (including a partial chunk) is kept.
    """

    def __init__(self, sd, config: AudioCaptureConfig) -> None:  # noqa: ANN001
        self._chunk_frames = config.chunk_frames
        self._chunks: list[np.ndarray] = []
        self._pending: list[np.ndarray] = []
        self._pending_frames = 0
        self._lock = threading.Lock()

        def callback(indata, frames, time, status):  # noqa: ANN001
            if status:
                logger.debug(f"[AUDIO] input status: {status}")
            with self._lock:
                self._pending.append(indata.copy())
                self._pending_frames += frames
                if self._pending_frames >= self._chunk_frames:
                    self._flush_pending()

        self._stream = sd.InputStream(
            samplerate=config.sample_rate,
            channels=config.channels,
            dtype=config.dtype,
            blocksize=config.block_frames,
            callback=callback,
        )

    def _flush_pending(self) -> None:
        # Caller holds the lock.
        if self._pending:
            self._chunks.append(np.concatenate(self._pending, axis=0))
            self._pending = []
            self._pending_frames = 0

    async def start(self) -> None:
        await asyncio.to_thread(self._stream.start)

    async def close(self) -> None:
        await asyncio.to_thread(self._stream.close)

    async def stop(self) -> list[np.ndarray]:
        try:
            # Returns once the final callback has run.
            await asyncio.to_thread(self._stream.stop)
        finally:
            await self.close()
        with self._lock:
            self._flush_pending()
            chunks, self._chunks = self._chunks, []
        return chunks


class SoundDeviceMicrophone:
    """PortAudio microphone via sounddevice. Delivers raw PCM (no DSP)."""

    async def open(self, config: AudioCaptureConfig) -> MicrophoneStream:
        sd = _require_sounddevice()

        try:
            await asyncio.to_thread(sd.query_devices, kind="input")
        except Exception as e:
            raise PermissionDenied("Microphone access was denied or no microphone was found.") from e

        if config.echo_cancellation or config.noise_suppression or config.auto_gain_control:
            logger.debug("[AUDIO] PortAudio delivers unprocessed input; processing requests not applied")

        try:
            stream = _SoundDeviceStream(sd, config)
        except Exception as e:
            raise HardwareUnavailable(f"Failed to open microphone: {e}") from e

        try:
            await stream.start()
        except Exception as e:
            try:
                await stream.close()
            except Exception as close_error:
                logger.debug(f"[AUDIO] closing microphone after failed start: {close_error}")
            raise HardwareUnavailable(f"Failed to start microphone: {e}") from e

        logger.info(f"[AUDIO] microphone opened rate={config.sample_rate} channels={config.channels}")
        return stream


class AudioPlayer:
    """WAV playback through the default output device."""

    def __init__(self) -> None:
        self._playing = False

    @property
    def is_playing(self) -> bool:
        return self._playing

    async def play_wav(self, wav_path: str | Path) -> None:
        """Play a WAV file to completion, or until ``stop`` is called."""
        sd = _require_sounddevice()
        import soundfile as sf  # type: ignore

        audio, sr = await asyncio.to_thread(sf.read, str(wav_path), dtype="float32")
        self._playing = True
        try:
            sd.play(audio, samplerate=sr, blocking=False)
            await asyncio.to_thread(sd.wait)
        finally:
            self._playing = False

    def stop(self) -> None:
        if not self._playing:
            return
        sd = _require_sounddevice()
        try:
            sd.stop()
        except Exception as e:
            logger.debug(f"[AUDIO] stop playback failed: {e}")
